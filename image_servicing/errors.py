from __future__ import annotations


class ServicingError(RuntimeError):
    pass


class CatalogUnavailable(ServicingError):
    """Backend unreachable, rejected credentials, or returned garbage. Aborts the batch."""


class MountPreconditionError(ServicingError):
    """Mount target missing or inaccessible. Aborts the apply phase."""


class TransferError(ServicingError):
    pass


class InspectionUnavailable(ServicingError):
    """An inspection method could not run at all (tool missing, crashed)."""


class ApplyError(ServicingError):
    pass


class BatchCancelled(ServicingError):
    """Caller abort honored between artifacts; recorded outcomes stay intact."""
