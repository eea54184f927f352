import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

WIN_LINES = [
    (0,1,2),(3,4,5),(6,7,8),
    (0,3,6),(1,4,7),(2,5,8),
    (0,4,8),(2,4,6)
]

EMPTY = ""
X, O  = "X", "O"
DRAW  = "draw"

IN_PROGRESS = "in_progress"
WON         = "won"
DRAWN       = "draw"


class MoveError(str, Enum):
    GAME_OVER        = "game_over"
    INVALID_POSITION = "invalid_position"
    CELL_OCCUPIED    = "cell_occupied"


@dataclass(frozen=True)
class Move:
    player: str
    position: int
    timestamp: int      # ms since epoch

    def to_dict(self):
        return {"player": self.player, "position": self.position, "timestamp": self.timestamp}


@dataclass(frozen=True)
class Summary:
    """Finished-game record handed to whoever persists results."""
    winner: str                 # "X" | "O" | "draw"
    moves: List[Move]
    final_board: List[str]
    duration: int               # ms

    def to_dict(self):
        return {
            "winner":     self.winner,
            "moves":      [m.to_dict() for m in self.moves],
            "finalBoard": list(self.final_board),
            "duration":   self.duration,
        }


@dataclass(frozen=True)
class MoveResult:
    accepted: bool
    status: str
    error: Optional[MoveError] = None
    summary: Optional[Summary] = field(default=None)


def check_win(board):
    for a, b, c in WIN_LINES:
        if board[a] and board[a] == board[b] == board[c]:
            return board[a], [a, b, c]
    return None, None


def other(player):
    return O if player == X else X


class GameEngine:
    """One 3x3 game: board, turn order and win/draw detection.

    Rejected moves never mutate anything. Once the game is won or drawn
    the board is frozen until reset().
    """

    def __init__(self, clock=time.time):
        self._clock = clock
        self.reset()

    def _now_ms(self):
        return int(self._clock() * 1000)

    @property
    def is_over(self):
        return self.status != IN_PROGRESS

    def reset(self):
        self.board          = [EMPTY]*9
        self.current_player = X
        self.status         = IN_PROGRESS
        self.winner         = None
        self.win_line       = None
        self.move_log       = []
        self.started_at     = self._now_ms()

    def apply_move(self, position):
        if self.is_over:
            return MoveResult(False, self.status, MoveError.GAME_OVER)
        # bool is an int subclass, but True is not a board position
        if isinstance(position, bool) or not isinstance(position, int) or not 0 <= position <= 8:
            return MoveResult(False, self.status, MoveError.INVALID_POSITION)
        if self.board[position] != EMPTY:
            return MoveResult(False, self.status, MoveError.CELL_OCCUPIED)

        player = self.current_player
        now = self._now_ms()
        self.board[position] = player
        self.move_log.append(Move(player, position, now))

        winner, line = check_win(self.board)
        if winner:
            self.status, self.winner, self.win_line = WON, player, line
        elif all(self.board):
            self.status, self.winner = DRAWN, DRAW
        else:
            self.current_player = other(player)
            return MoveResult(True, self.status)

        summary = Summary(
            winner=self.winner,
            moves=list(self.move_log),
            final_board=list(self.board),
            duration=max(0, now - self.started_at),
        )
        return MoveResult(True, self.status, summary=summary)

    def valid_moves(self):
        if self.is_over:
            return []
        return [i for i, cell in enumerate(self.board) if cell == EMPTY]

    def state(self):
        return {
            "board":         list(self.board),
            "currentPlayer": self.current_player,
            "status":        self.status,
            "winner":        self.winner,
            "winLine":       self.win_line,
            "moves":         [m.to_dict() for m in self.move_log],
        }
