# Force SQLModel table registration at test discovery time
# This ensures all models are registered before any test database creation
from pingpong.models.group import GroupPlayerLink, TournamentGroup  # noqa: F401
from pingpong.models.match import Match  # noqa: F401
from pingpong.models.match_set import MatchSet  # noqa: F401
from pingpong.models.player import Player  # noqa: F401
from pingpong.models.tournament import Tournament  # noqa: F401
from pingpong.models.tournament_result import TournamentResult  # noqa: F401
