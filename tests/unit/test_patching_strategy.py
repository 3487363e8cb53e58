from __future__ import annotations

import pytest

from domain.patching import DomainStrategy, PatchError, PatchMode


@pytest.mark.parametrize("target", ["abcd", "sanasol.ws", "ab.example"])
def test_targets_up_to_original_length_use_direct_mode(target: str) -> None:
    strategy = DomainStrategy.for_target(target)

    assert strategy.mode is PatchMode.DIRECT
    assert strategy.main_domain == target
    assert strategy.subdomain_prefix == ""
    assert not strategy.is_split


def test_eleven_characters_switch_to_split_mode() -> None:
    strategy = DomainStrategy.for_target("example.org")

    assert strategy.mode is PatchMode.SPLIT
    assert strategy.subdomain_prefix == "exampl"
    assert strategy.main_domain == "e.org"
    assert strategy.subdomain_prefix + strategy.main_domain == "example.org"


def test_sixteen_character_target_is_accepted() -> None:
    strategy = DomainStrategy.for_target("play.example.net")

    assert strategy.subdomain_prefix == "play.e"
    assert strategy.main_domain == "xample.net"


@pytest.mark.parametrize("target", ["abc", "a-very-long.example", ""])
def test_out_of_range_targets_are_rejected(target: str) -> None:
    with pytest.raises(PatchError, match="between 4 and 16"):
        DomainStrategy.for_target(target)


def test_surrounding_whitespace_is_ignored() -> None:
    assert DomainStrategy.for_target("  sanasol.ws\n").target_domain == "sanasol.ws"


def test_custom_bounds_are_honoured() -> None:
    with pytest.raises(PatchError):
        DomainStrategy.for_target("sanasol.ws", max_length=8)
