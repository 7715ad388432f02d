"""Recall.ai access -- REST client and transcript retrieval.

Provides RecallClient for the Recall.ai REST API and TranscriptRetriever,
which normalizes the provider's transcript payloads into ordered segments.
"""
