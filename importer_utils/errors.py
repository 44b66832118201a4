class ImporterError(Exception):
    pass


class ConfigurationError(ImporterError):
    pass


class ParseError(ImporterError):
    pass


class ResolverError(ImporterError):
    pass


class AssumeRoleError(ImporterError):
    def __init__(self, message: str, error_code: str = None):
        super().__init__(message)
        self.error_code = error_code


class ChangeSetError(ImporterError):
    pass


class StackOperationError(ImporterError):
    pass


class WaiterTimeout(ImporterError):
    pass


class UpdateResourceError(ImporterError):
    pass


class OperationTerminal(ImporterError):
    def __init__(self, message: str, status: str = None):
        super().__init__(message)
        self.status = status


class PatchDocumentError(ImporterError):
    pass


class OperationCancelled(ImporterError):
    pass


class UploadError(ImporterError):
    pass
