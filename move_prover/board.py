"""Board decoding and circuit-input derivation.

Turns a GameSnapshot into the CircuitInput the prover program consumes:
the FEN placement field as a 64-entry signed array (a8 first), the last move
as square indices (rank*8+file, ranks counted from the 8th), the side to move
and the public inputs. Also projects the public outputs the program commits.
"""

from __future__ import annotations

from typing import Any

from move_prover.models import CircuitInput, GameSnapshot

STARTING_FEN = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"

# White pieces positive, black negative.
PIECE_CODES: dict[str, int] = {
    "K": 1, "Q": 2, "R": 3, "B": 4, "N": 5, "P": 6,
    "k": -1, "q": -2, "r": -3, "b": -4, "n": -5, "p": -6,
}


def square_to_index(square: str) -> int:
    """Map a square name to 0-63 with a8 = 0 and h1 = 63."""
    if len(square) != 2 or square[0] not in "abcdefgh" or square[1] not in "12345678":
        raise ValueError(f"Invalid square name: {square!r}")
    file = ord(square[0]) - ord("a")
    rank = 8 - int(square[1])
    return rank * 8 + file


def fen_to_array(fen: str) -> tuple[int, ...]:
    """Decode the placement field of a FEN string.

    Unknown piece letters decode to 0; overlong ranks are truncated at 64
    squares rather than rejected.
    """
    board = [0] * 64
    placement = fen.split(" ", 1)[0] if fen else ""
    square = 0
    for rank in placement.split("/"):
        for char in rank:
            if square >= 64:
                break
            if char.isdigit():
                square += int(char)
            else:
                board[square] = PIECE_CODES.get(char, 0)
                square += 1
    return tuple(board)


def prepare_circuit_input(
    snapshot: GameSnapshot,
    default_move: tuple[int, int] = (52, 36),
) -> CircuitInput:
    """Derive the circuit input for a snapshot.

    A snapshot without a last move (the initial position) uses
    ``default_move``, which is e2→e4 unless a profile says otherwise.
    """
    fen = snapshot.fen or STARTING_FEN
    if snapshot.last_move is not None:
        move_from = square_to_index(snapshot.last_move.from_square)
        move_to = square_to_index(snapshot.last_move.to_square)
    else:
        move_from, move_to = default_move

    return CircuitInput(
        board_state=fen_to_array(fen),
        move_from=move_from,
        move_to=move_to,
        move_number=snapshot.move_number,
        player_turn=1 if snapshot.turn == "w" else 2,
        public_inputs=(fen, snapshot.move_number),
    )


def project_public_outputs(
    circuit_input: CircuitInput,
    checksum: int | None = None,
) -> dict[str, Any]:
    """Public outputs as the prover program commits them."""
    move_valid = (
        circuit_input.move_from < 64
        and circuit_input.move_to < 64
        and circuit_input.move_from != circuit_input.move_to
        and circuit_input.move_number > 0
    )
    if checksum is None:
        checksum = (
            circuit_input.move_from + circuit_input.move_to + circuit_input.move_number
        )
    return {
        "move_valid": move_valid,
        "from_square": circuit_input.move_from,
        "to_square": circuit_input.move_to,
        "move_number": circuit_input.move_number,
        "checksum": checksum,
    }
