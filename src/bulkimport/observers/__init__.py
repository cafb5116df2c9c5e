"""Built-in row observers and the chain that applies them."""

from bulkimport.observers.additional_attribute import AdditionalAttributeObserver
from bulkimport.observers.base import BaseObserver
from bulkimport.observers.chain import ChainOutcome, ObserverChain
from bulkimport.observers.enrichment import SourceTraceObserver
from bulkimport.observers.validation import RequiredValueObserver

BUILTIN_OBSERVERS: tuple[type[BaseObserver], ...] = (
    AdditionalAttributeObserver,
    RequiredValueObserver,
    SourceTraceObserver,
)

__all__ = [
    "BUILTIN_OBSERVERS",
    "AdditionalAttributeObserver",
    "BaseObserver",
    "ChainOutcome",
    "ObserverChain",
    "RequiredValueObserver",
    "SourceTraceObserver",
]
