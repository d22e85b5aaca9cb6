"""Audit chain core: interception, asynchronous dispatch, hash-chained recording and verification."""

from agrotrace.audit.chain_lock import ChainLock, LocalChainLock
from agrotrace.audit.dispatcher import AuditDispatcher
from agrotrace.audit.entity_registry import (
    DEFAULT_REGISTRY,
    Auditable,
    EntityDescriptor,
    EntityInfo,
    EntityRegistry,
)
from agrotrace.audit.interceptor import AuditSink, ChangeInterceptor
from agrotrace.audit.recorder import AuditRecorder, ChainVerification
from agrotrace.audit.repository import AuditEventRepository, ChainHead, ChainSnapshot

__all__ = [
    "AuditDispatcher",
    "AuditEventRepository",
    "AuditRecorder",
    "AuditSink",
    "Auditable",
    "ChainHead",
    "ChainLock",
    "ChainSnapshot",
    "ChainVerification",
    "ChangeInterceptor",
    "DEFAULT_REGISTRY",
    "EntityDescriptor",
    "EntityInfo",
    "EntityRegistry",
    "LocalChainLock",
]
