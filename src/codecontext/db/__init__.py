"""codecontext vector store layer: record models and the Pinecone gateway."""

from codecontext.db.models import Match, NamespaceSummary, Record
from codecontext.db.pinecone import PineconeGateway, probe_vector

__all__ = [
    "Match",
    "NamespaceSummary",
    "PineconeGateway",
    "Record",
    "probe_vector",
]
