from .simulator import ActorScript, MockActorRun, MockApifyScenario, MockApifyService

__all__ = [
    "ActorScript",
    "MockActorRun",
    "MockApifyScenario",
    "MockApifyService",
]
