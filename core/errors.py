# core/errors.py
"""
Error taxonomy for the capture pipeline.

Every failure a user may see derives from CaptureError and carries a
stable `code` plus a short pt-BR `message` ready to be shown as-is.
"""

from typing import Any, Optional


class CaptureError(Exception):
    code: str = "CAPTURE_ERROR"
    message: str = "Ocorreu um erro inesperado."

    def __init__(self, message: Optional[str] = None, *, code: Optional[str] = None):
        self.message = message or self.message
        self.code = code or self.code
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {
            "type": type(self).__name__,
            "code": self.code,
            "message": self.message,
        }


# ---------------------------------------------------------------------
# Speech recognition
# ---------------------------------------------------------------------
class SpeechError(CaptureError):
    code = "SPEECH_ERROR"
    message = "Erro no reconhecimento de voz."


class SpeechUnsupported(SpeechError):
    code = "UNSUPPORTED"
    message = "Seu navegador não suporta reconhecimento de voz."


class SpeechPermissionDenied(SpeechError):
    code = "PERMISSION_DENIED"
    message = "Permissão negada (verifique URL)"


class SpeechNoResult(SpeechError):
    code = "NO_SPEECH"
    message = "Nenhuma fala detectada"


class SpeechNetwork(SpeechError):
    code = "NETWORK"
    message = "Erro de conexão/rede"


class SpeechBlocked(SpeechError):
    code = "BLOCKED"
    message = "Microfone desconectado ou bloqueado?"


class SpeechStartTimeout(SpeechBlocked):
    code = "PERMISSION_OR_TIMEOUT"
    message = "Falha ao iniciar. Tente novamente."


class SpeechEngineError(SpeechError):
    code = "OTHER"

    def __init__(self, engine_code: str):
        self.engine_code = engine_code
        super().__init__(f"Erro: {engine_code}")


class SpeechSessionBusy(SpeechError):
    code = "SESSION_ACTIVE"
    message = "Já existe uma captura de voz em andamento."


# ---------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------
class ClassificationError(CaptureError):
    code = "CLASSIFICATION_ERROR"
    message = "Erro na conexão com a IA."


class ClassificationEmpty(ClassificationError):
    code = "NOT_UNDERSTOOD"
    message = "Não entendi. Pode repetir?"


class ClassificationTransportError(ClassificationError):
    code = "CLASSIFIER_UNAVAILABLE"
    message = "Erro na conexão com a IA."


class ClassificationRejected(ClassificationError):
    code = "CLASSIFIER_REJECTED"
    message = "Erro ao processar comando."


class ClassifierUnavailable(Exception):
    """
    Retryable transport failure raised by the classifier adapter.
    Consumed by the retry wrapper and never shown to the user.
    """


# ---------------------------------------------------------------------
# Commit
# ---------------------------------------------------------------------
class CommitError(CaptureError):
    code = "COMMIT_ERROR"
    message = "Erro ao salvar. Verifique sua conexão."


class CommitRejected(CommitError):
    code = "COMMIT_REJECTED"


class CommitPartialFailure(CommitError):
    """
    Some writes of a commit succeeded before a later one failed.
    `outcome` holds what was persisted so a retry can skip it.
    """

    code = "COMMIT_PARTIAL_FAILURE"

    def __init__(self, message: Optional[str] = None, *, outcome: Any = None):
        self.outcome = outcome
        super().__init__(message)


# ---------------------------------------------------------------------
# Review session
# ---------------------------------------------------------------------
class InvalidTransition(CaptureError):
    code = "INVALID_TRANSITION"
    message = "Ação indisponível neste momento."


class SessionBusy(InvalidTransition):
    code = "SESSION_BUSY"
    message = "Aguarde o processamento atual terminar."


class InvalidDraftEdit(CaptureError):
    code = "INVALID_DRAFT_EDIT"
    message = "Valor inválido para o lançamento."
