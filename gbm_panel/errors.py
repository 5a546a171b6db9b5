"""Fatal data errors raised by the core stages."""


def _preview(ids, limit: int = 10) -> str:
    ids = list(ids)
    shown = ", ".join(str(i) for i in ids[:limit])
    if len(ids) > limit:
        shown += f", … (+{len(ids) - limit} more)"
    return shown


class PanelDataError(Exception):
    """Base class for errors that abort a pipeline stage."""


class _MismatchError(PanelDataError):
    kind = "identifiers"

    def __init__(self, missing, where: str):
        self.missing = sorted(missing)
        self.where = where
        super().__init__(
            f"{len(self.missing)} {self.kind} missing from {where}: "
            f"{_preview(self.missing)}"
        )


class SampleMismatchError(_MismatchError):
    kind = "sample barcodes"


class GeneMismatchError(_MismatchError):
    kind = "genes"


class _DegenerateError(PanelDataError):
    reason = "degenerate values"

    def __init__(self, identifiers):
        self.identifiers = sorted(identifiers)
        super().__init__(
            f"{self.reason} for {len(self.identifiers)} item(s): "
            f"{_preview(self.identifiers)}"
        )


class ZeroLibrarySizeError(_DegenerateError):
    reason = "zero total count (cannot library-size normalise)"


class ZeroVarianceError(_DegenerateError):
    reason = "zero variance (cannot scale to unit variance)"


class NegativeCountError(_DegenerateError):
    reason = "negative raw counts"
