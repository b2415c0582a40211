import socketio

from src.pitchcoach.realtime import backbone
from src.pitchcoach.realtime.backbone import BackboneMode, attach_backbone


async def test_no_redis_url_keeps_single_instance():
    sio = socketio.AsyncServer(async_mode="asgi")
    manager = sio.manager

    mode = await attach_backbone(sio, None)

    assert mode == BackboneMode.SINGLE_INSTANCE
    assert sio.manager is manager


async def test_unreachable_redis_falls_back(monkeypatch):
    probed = []

    async def fake_probe(url, timeout):
        probed.append((url, timeout))
        return False

    monkeypatch.setattr(backbone, "probe_redis", fake_probe)
    sio = socketio.AsyncServer(async_mode="asgi")
    manager = sio.manager

    mode = await attach_backbone(sio, "redis://redis.invalid:6379/0", timeout=0.5)

    assert mode == BackboneMode.SINGLE_INSTANCE
    assert probed == [("redis://redis.invalid:6379/0", 0.5)]
    assert sio.manager is manager


async def test_reachable_redis_installs_pubsub_manager(monkeypatch):
    async def fake_probe(url, timeout):
        return True

    monkeypatch.setattr(backbone, "probe_redis", fake_probe)
    sio = socketio.AsyncServer(async_mode="asgi")

    mode = await attach_backbone(sio, "redis://localhost:6379/0")

    assert mode == BackboneMode.REDIS
    assert isinstance(sio.manager, socketio.AsyncRedisManager)
    assert sio.manager.server is sio
    assert sio.manager_initialized is False


async def test_manager_is_not_swapped_after_connections(monkeypatch):
    async def fake_probe(url, timeout):
        raise AssertionError("Redis must not be probed once the server is serving")

    monkeypatch.setattr(backbone, "probe_redis", fake_probe)
    sio = socketio.AsyncServer(async_mode="asgi")
    manager = sio.manager
    sio.manager_initialized = True

    mode = await attach_backbone(sio, "redis://localhost:6379/0")

    assert mode == BackboneMode.SINGLE_INSTANCE
    assert sio.manager is manager
