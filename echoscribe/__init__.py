"""
Echo Scribe - local speech-to-text transcription toolkit.

Turns recorded audio into saved, optionally speaker-segmented markdown
transcripts using a locally installed whisper.cpp engine: model download
and verification → engine invocation → post-processing → transcript export.
"""

__version__ = "0.1.0"
