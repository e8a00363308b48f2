"""Audio transcoding."""

from .transcode import AudioTranscoder

__all__ = ["AudioTranscoder"]
