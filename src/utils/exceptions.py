class PetNameException(Exception):
    pass


class LoadFailure(PetNameException):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Model failed to load: {reason}")


class NotReadyError(PetNameException):
    def __init__(self, state: str):
        self.state = state
        super().__init__(f"Model is not ready (state: {state})")


class BusyError(PetNameException):
    def __init__(self):
        super().__init__("An inference is already running")


class InferenceFailure(PetNameException):
    def __init__(self, task: str, reason: str):
        self.task = task
        self.reason = reason
        super().__init__(f"Inference failed for {task}: {reason}")


class ProtocolError(PetNameException):
    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Malformed command: {detail}")


class InvalidParametersError(PetNameException):
    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Invalid parameters: {detail}")


class DownloadError(PetNameException):
    def __init__(self, model_id: str, reason: str):
        self.model_id = model_id
        super().__init__(f"Failed to download {model_id}: {reason}")


class SuggestionError(PetNameException):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Name suggestion failed: {reason}")
