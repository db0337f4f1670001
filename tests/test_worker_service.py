import pytest

from blockdigest.infra.worker import (
    WORKER_ACTOR_PATH,
    _parse_seeds,
    parse_address,
    worker_node_id,
)

pytestmark = [pytest.mark.unit]


def test_parse_address():
    assert parse_address("10.0.0.1:25520") == ("10.0.0.1", 25520)


def test_parse_address_ipv6_keeps_host():
    assert parse_address("::1:9000") == ("::1", 9000)


def test_parse_seeds():
    assert _parse_seeds("a:1,b:2") == [("a", 1), ("b", 2)]
    assert _parse_seeds("") is None
    assert _parse_seeds(None) is None


def test_node_ids_match_cluster_lookup():
    assert worker_node_id(0) == "node-0"
    assert worker_node_id(3) == "node-3"
    assert WORKER_ACTOR_PATH == "/worker"
