"""
Error kinds raised by the per-SKU forecasting pipeline.

Every failure carries a stable ``kind`` string so batch runs can record which
SKUs failed and why, then carry on with the rest.
"""

from __future__ import annotations

from typing import Optional


class CrystalBallError(Exception):
    """Base class for pipeline failures tied to a single SKU."""

    kind = "CrystalBallError"

    def __init__(self, message: str, *, sku_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.sku_id = sku_id

    def with_sku(self, sku_id: str) -> "CrystalBallError":
        """Attach the SKU identifier if the raising component did not know it."""
        if self.sku_id is None:
            self.sku_id = sku_id
        return self

    def to_dict(self):
        return {"sku_id": self.sku_id or "", "kind": self.kind, "message": self.message}

    def __reduce__(self):
        # Keyword-only attributes must survive the trip back from worker processes
        return (_restore_error, (type(self), self.message, dict(self.__dict__)))

    def __str__(self) -> str:
        if self.sku_id:
            return f"[{self.kind}] {self.sku_id}: {self.message}"
        return f"[{self.kind}] {self.message}"


class CadenceMismatch(CrystalBallError):
    """Observed dates are inconsistent with a weekly step."""

    kind = "CadenceMismatch"


class InsufficientData(CrystalBallError):
    """Too few observations for the requested operation."""

    kind = "InsufficientData"


class ModelSelectionFailure(CrystalBallError):
    """No candidate model converged during order search."""

    kind = "ModelSelectionFailure"

    def __init__(self, message: str, *, sku_id: Optional[str] = None, candidates_tried: int = 0) -> None:
        super().__init__(message, sku_id=sku_id)
        self.candidates_tried = candidates_tried


class RegressorMismatch(CrystalBallError):
    """Forecast-time regressors disagree with the fitted model's regressor set."""

    kind = "RegressorMismatch"


def _restore_error(cls, message, state):
    error = cls.__new__(cls)
    Exception.__init__(error, message)
    error.__dict__.update(state)
    return error


__all__ = [
    "CadenceMismatch",
    "CrystalBallError",
    "InsufficientData",
    "ModelSelectionFailure",
    "RegressorMismatch",
]
