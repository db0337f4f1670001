from blockdigest.actors.collector import ResultCollector, collector_actor
from blockdigest.actors.dispatcher import dispatcher_actor
from blockdigest.actors.worker import digest_worker

__all__ = [
    "ResultCollector",
    "collector_actor",
    "digest_worker",
    "dispatcher_actor",
]
