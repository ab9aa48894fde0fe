"""
Error taxonomy.

Every error carries a coarse `kind` (used by the HTTP layer to pick a status code)
and a `public_message` that never includes filesystem paths or storage layout.
"""

from __future__ import annotations


class ShelbyVoiceError(RuntimeError):
    kind = "internal"
    default_message = "Internal error"
    # when False, only an explicit public_message or default_message reaches callers
    message_is_public = True

    def __init__(self, message: str | None = None, *, public_message: str | None = None) -> None:
        super().__init__(message or self.default_message)
        shown = message if self.message_is_public else None
        self.public_message = str(public_message or shown or self.default_message)


class ValidationError(ShelbyVoiceError):
    kind = "bad_input"
    default_message = "Invalid input"


class UnsupportedReferenceError(ValidationError):
    default_message = "Unsupported model reference"


class NotFoundError(ShelbyVoiceError):
    kind = "not_found"
    default_message = "Not found"


class ModelIncompleteError(NotFoundError):
    default_message = "Voice model is incomplete"


class UnauthorizedError(ShelbyVoiceError):
    kind = "forbidden"
    default_message = "Only the owner may modify this resource"


class AccessDeniedError(ShelbyVoiceError):
    kind = "forbidden"
    default_message = "Access denied"


class ConflictError(ShelbyVoiceError):
    kind = "conflict"
    default_message = "A different bundle already exists at this URI"


class EmbeddingError(ShelbyVoiceError):
    kind = "bad_input"
    default_message = "Embedding generation failed"


class BundleAssemblyError(ShelbyVoiceError):
    kind = "bad_input"
    default_message = "Bundle assembly failed"


class StorageError(ShelbyVoiceError):
    kind = "unavailable"
    default_message = "Storage unavailable"
    message_is_public = False


class UpstreamProviderError(ShelbyVoiceError):
    """
    Failure of an external collaborator (TTS provider, transcoder, storage RPC).

    `detail` keeps the collaborator's own diagnostic text so operators can tell
    "our logic is wrong" apart from "the provider rejected the input".
    """

    kind = "unavailable"
    default_message = "Upstream provider unavailable"
    message_is_public = False

    def __init__(
        self,
        message: str | None = None,
        *,
        status_code: int | None = None,
        detail: str = "",
        public_message: str | None = None,
    ) -> None:
        super().__init__(message, public_message=public_message)
        self.status_code = status_code
        self.detail = str(detail or "")


class NormalizationError(UpstreamProviderError):
    default_message = "Audio normalization failed"


class SynthesisError(UpstreamProviderError):
    default_message = "Speech synthesis failed"
