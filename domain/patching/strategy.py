"""Selection of direct or split rewriting for a replacement domain."""

from __future__ import annotations

from dataclasses import dataclass

from domain.patching.models import PatchError, PatchMode

ORIGINAL_DOMAIN = "hytale.com"
SPLIT_PREFIX_LENGTH = 6


@dataclass(frozen=True)
class DomainStrategy:
    """How ``target_domain`` is written over literals of ``original_domain``.

    Direct mode is used when the target fits in the original literal.  Longer
    targets are split: the first six characters replace the known subdomain
    prefixes and the rest replaces the base domain.
    """

    original_domain: str
    target_domain: str
    mode: PatchMode
    main_domain: str
    subdomain_prefix: str

    @classmethod
    def for_target(
        cls,
        target_domain: str,
        *,
        original_domain: str = ORIGINAL_DOMAIN,
        min_length: int = 4,
        max_length: int = 16,
    ) -> "DomainStrategy":
        target = target_domain.strip()
        if not min_length <= len(target) <= max_length:
            raise PatchError(
                f"Domain '{target}' must be between {min_length} and {max_length} characters"
            )
        if len(target) <= len(original_domain):
            return cls(
                original_domain=original_domain,
                target_domain=target,
                mode=PatchMode.DIRECT,
                main_domain=target,
                subdomain_prefix="",
            )
        return cls(
            original_domain=original_domain,
            target_domain=target,
            mode=PatchMode.SPLIT,
            main_domain=target[SPLIT_PREFIX_LENGTH:],
            subdomain_prefix=target[:SPLIT_PREFIX_LENGTH],
        )

    @property
    def is_split(self) -> bool:
        return self.mode is PatchMode.SPLIT


__all__ = ["DomainStrategy", "ORIGINAL_DOMAIN", "SPLIT_PREFIX_LENGTH"]
