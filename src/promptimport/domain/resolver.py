"""
resolver.py
===========

Tiered dependency resolution.

Tiers are tried in a fixed priority order and the chain stops at the first
tier that returns anything other than UNRESOLVED:

1. local catalog    (in-memory scan, never blocks)
2. remote peers     (pluggable; the default does nothing)
3. registry         (CivitAI, see integrations/civitai.py)

Each tier reports a TierResult instead of mutating the record, so the
ordering and short-circuit rules can be exercised on their own. The record
is only touched when a result is applied.
"""

from typing import List, Optional

from loguru import logger

from .catalog import ModelCatalog
from .models import DependencyRecord, TierResult

LOCAL_SOURCE = "local"
REMOTE_SOURCE = "remote"
REGISTRY_SOURCE = "registry"

UNRESOLVABLE_MESSAGE = "Could not resolve dependency from any source"


class ResolverTier:
    """One resolution strategy."""

    name = "tier"

    def resolve(self, record: DependencyRecord) -> TierResult:
        raise NotImplementedError


class LocalResolver(ResolverTier):
    name = "local"

    def __init__(self, catalog: ModelCatalog) -> None:
        self.catalog = catalog

    def resolve(self, record: DependencyRecord) -> TierResult:
        handler = self.catalog.handler_for_kind(record.kind)
        if handler is None:
            logger.debug("No catalog handler for type: {}", record.kind)
            return TierResult.unresolved(f"no local catalog for type {record.kind}")

        if record.sha256:
            entry = handler.find_by_hash(record.sha256)
            if entry is not None:
                return TierResult.resolved(entry.path, LOCAL_SOURCE)

        if record.filename:
            entry = handler.find_by_name(record.filename)
            if entry is not None:
                return TierResult.resolved(entry.path, LOCAL_SOURCE)

        return TierResult.unresolved()


class RemoteResolver(ResolverTier):
    """
    Federation of peer nodes that could supply the artifact.

    Subclasses ask their peers and return RESOLVED/SCHEDULED with source
    ``remote``; returning UNRESOLVED hands the dependency to the registry.
    """

    name = "remote"


class NullRemoteResolver(RemoteResolver):
    """No peers configured."""

    def resolve(self, record: DependencyRecord) -> TierResult:
        return TierResult.unresolved("no remote peers configured")


class TieredResolver:
    def __init__(
        self,
        local: ResolverTier,
        remote: Optional[ResolverTier] = None,
        registry: Optional[ResolverTier] = None,
    ) -> None:
        self.tiers: List[ResolverTier] = [local, remote or NullRemoteResolver()]
        if registry is not None:
            self.tiers.append(registry)

    def evaluate(self, record: DependencyRecord) -> TierResult:
        """
        Run the tiers in order without touching ``record``.

        A tier that raises is logged and counted as UNRESOLVED. If no tier
        produces a final answer the dependency is DENIED.
        """
        logger.debug("Resolving dependency: {} - {}", record.kind, record.reference.raw_reference)
        last_reason: Optional[str] = None

        for tier in self.tiers:
            try:
                result = tier.resolve(record)
            except Exception as e:
                logger.exception("Error in {} tier for {}", tier.name, record.reference.raw_reference)
                last_reason = f"{tier.name} tier error: {e}"
                continue

            if result.is_final:
                logger.info(
                    "Dependency {} handled by {} tier: {}",
                    record.reference.raw_reference,
                    tier.name,
                    result.outcome.value,
                )
                return result

        logger.warning("Failed to resolve dependency: {}", record.reference.raw_reference)
        message = UNRESOLVABLE_MESSAGE
        if last_reason:
            message = f"{message} ({last_reason})"
        return TierResult.denied(message)

    def resolve(self, record: DependencyRecord) -> Optional[TierResult]:
        """
        Resolve ``record`` in place. Records that are no longer pending are
        left alone and None is returned.
        """
        if not record.is_pending:
            return None
        result = self.evaluate(record)
        try:
            record.apply(result)
        except ValueError as e:
            logger.error("Rejected {} result for {}: {}", result.outcome.value, record.reference.raw_reference, e)
            record.mark_failed(str(e))
        return result
