"""Exception hierarchy shared across the installer."""


class RecipeweaverError(Exception):
    """Base class for all installer errors."""


class ArchiveError(RecipeweaverError):
    """Package blob cannot be decoded, opened, or holds no manifest."""


class RecipeError(RecipeweaverError):
    """Manifest is not valid JSON or has no usable step list."""


class RegistryConflictError(RecipeweaverError):
    """A write-once identifier mapping was given a different value."""

    def __init__(self, namespace: str, old_id: str, existing: object, new: object):
        self.namespace = namespace
        self.old_id = old_id
        self.existing = existing
        self.new = new
        super().__init__(
            f"{namespace}:{old_id} already maps to {existing!r}; refusing {new!r}"
        )


class ProgressNotFoundError(RecipeweaverError):
    """No progress record where one was required."""


class BackupError(RecipeweaverError):
    """Course backup archive cannot be extracted or parsed."""


class PackageSourceError(RecipeweaverError):
    """Remote plugin package metadata or archive cannot be fetched."""


class QuestionImportError(RecipeweaverError):
    """Question bank file was rejected by the importer."""


class ExportError(RecipeweaverError):
    """Course backups cannot be written for export."""
