from __future__ import annotations

import pytest

from javasentinel.rules.registry import set_extra_rules


@pytest.fixture(autouse=True)
def _reset_rule_registry_plugins() -> None:
    set_extra_rules([])
