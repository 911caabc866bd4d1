"""Error taxonomy for marker scoring runs."""

from __future__ import annotations


class AmbientMarkerError(Exception):
    """Base class for errors that abort a marker scoring run.

    `gene` and `cell` name the offending identifiers when one is known.
    """

    kind = "AmbientMarkerError"

    def __init__(
        self,
        message: str,
        *,
        gene: str | None = None,
        cell: str | None = None,
    ) -> None:
        super().__init__(message)
        self.gene = gene
        self.cell = cell

    def describe(self) -> str:
        parts = [f"{self.kind}: {self.args[0]}"]
        if self.gene is not None:
            parts.append(f"gene={self.gene}")
        if self.cell is not None:
            parts.append(f"cell={self.cell}")
        return " | ".join(parts)


class InvalidInput(AmbientMarkerError, ValueError):
    """Malformed or inconsistent counts, ambient profile or size factors."""

    kind = "InvalidInput"


class OracleFailure(AmbientMarkerError, RuntimeError):
    """The non-expressing cell classifier failed or returned malformed output."""

    kind = "OracleFailure"


class NumericInvariantViolation(AmbientMarkerError, ArithmeticError):
    """An internal numeric invariant broke (logic bug, not bad input)."""

    kind = "NumericInvariantViolation"
