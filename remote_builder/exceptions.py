"""Custom exceptions for nixos-remote-builder."""


class ManagerError(RuntimeError):
    """Raised on unrecoverable configuration or runtime errors."""


class BundleError(ManagerError):
    pass


class CannotCreateBundle(BundleError):
    pass


class IdentityError(ManagerError):
    pass


class MissingIdentifierData(IdentityError):
    pass


class MalformedIdentifier(IdentityError):
    pass


class CannotPersistIdentifier(IdentityError):
    """The identifier could not be written; the guest must not boot without it."""


class StoreError(ManagerError):
    pass


class CannotCreateStore(StoreError):
    pass


class CannotFindStore(StoreError):
    pass


class DiskError(ManagerError):
    pass


class CannotCreateDiskImage(DiskError):
    pass


class CannotOpenDiskImage(DiskError):
    pass


class CannotSizeDiskImage(DiskError):
    pass


class ConfigurationError(ManagerError):
    pass


class InvalidConfiguration(ConfigurationError):
    """libvirt rejected the rendered domain definition."""


class CannotCreateDiskAttachment(ConfigurationError):
    pass


class InvalidSettings(ConfigurationError):
    pass


class StartError(ManagerError):
    pass


class CannotStartVirtualMachine(StartError):
    pass
