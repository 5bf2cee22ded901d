from pingpong.models.group import GroupPlayerLink, TournamentGroup
from pingpong.models.match import DEFAULT_PHASE, Match, MatchStatus
from pingpong.models.match_set import MatchSet
from pingpong.models.player import Player
from pingpong.models.tournament import Tournament, TournamentFormat, TournamentStatus
from pingpong.models.tournament_result import TournamentResult

__all__ = [
    "DEFAULT_PHASE",
    "GroupPlayerLink",
    "Match",
    "MatchSet",
    "MatchStatus",
    "Player",
    "Tournament",
    "TournamentFormat",
    "TournamentGroup",
    "TournamentResult",
    "TournamentStatus",
]
