"""Tests for the scene engine."""

from __future__ import annotations

import pytest

from atv_remote.errors import DeviceNotConnected, InvalidParameter, MissingParameters, SceneNotFound
from atv_remote.keys import KEY_DPAD_DOWN, KEY_DPAD_CENTER, KEY_VOLUME_DOWN, KEY_VOLUME_MUTE, KEY_VOLUME_UP
from atv_remote.scenes import Scene, SceneEngine
from atv_remote.store import JsonFileStore, MemoryStore

MOVIE_NIGHT = {
    "volume": 55,
    "muted": False,
    "currentApp": "https://www.netflix.com/title/80057281",
    "keys": ["DPAD_DOWN", KEY_DPAD_CENTER],
    "description": "Netflix at a sensible volume",
}


@pytest.fixture
def engine(manager) -> SceneEngine:
    return SceneEngine(MemoryStore(), manager, app_settle_delay=0, volume_step_delay=0, key_delay=0)


async def test_save_and_list(engine) -> None:
    """Test scenes are stored and listed by name."""
    engine.save("movie", MOVIE_NIGHT)
    engine.save("ambient", {"volume": 10})

    names = [scene.name for scene in engine.list()]
    assert names == ["ambient", "movie"]
    assert engine.get("movie").description == "Netflix at a sensible volume"


async def test_save_overwrites(engine) -> None:
    """Test saving under an existing name replaces the scene."""
    engine.save("movie", MOVIE_NIGHT)
    engine.save("movie", {"volume": 20})

    assert engine.get("movie").volume == 20
    assert engine.get("movie").current_app is None


@pytest.mark.parametrize(
    "data",
    [
        {"volume": 150},
        {"volume": "loud"},
        {"volume": True},
        {"muted": "yes"},
        {"keys": "HOME"},
        {"keys": [None]},
        {"currentApp": 5},
    ],
)
async def test_save_rejects_invalid(engine, data) -> None:
    """Test malformed scenes are rejected."""
    with pytest.raises(InvalidParameter):
        engine.save("bad", data)
    assert engine.list() == []


async def test_save_requires_name(engine) -> None:
    """Test a scene needs a name."""
    with pytest.raises(MissingParameters):
        engine.save("", MOVIE_NIGHT)


async def test_unknown_app_is_not_restored(engine) -> None:
    """Test a captured app of "unknown" is treated as no app."""
    scene = engine.save("captured", {"volume": 30, "currentApp": "unknown"})
    assert scene.current_app is None


async def test_delete(engine) -> None:
    """Test deleting removes the scene; deleting again is SceneNotFound."""
    engine.save("movie", MOVIE_NIGHT)
    engine.delete("movie")

    with pytest.raises(SceneNotFound):
        engine.delete("movie")
    assert engine.list() == []


async def test_delete_missing_leaves_store_unchanged(engine) -> None:
    """Test deleting a missing scene does not touch other scenes."""
    engine.save("movie", MOVIE_NIGHT)
    with pytest.raises(SceneNotFound):
        engine.delete("other")
    assert [s.name for s in engine.list()] == ["movie"]


def test_scene_not_found_status() -> None:
    """Test missing scenes map to 404."""
    assert SceneNotFound().status_code == 404


async def test_execute_order(engine, connected, session_factory) -> None:
    """Test app launch, then volume, then keys."""
    session_factory.volume = 57
    await connected("tv1")
    engine.save("movie", MOVIE_NIGHT)

    result = await engine.execute("movie", "tv1")

    sent = session_factory.latest("tv1").sent
    assert sent[0] == ("app", MOVIE_NIGHT["currentApp"])
    assert sent[1:3] == [("key", KEY_VOLUME_DOWN), ("key", KEY_VOLUME_DOWN)]
    assert sent[3:] == [("key", KEY_DPAD_DOWN), ("key", KEY_DPAD_CENTER)]
    assert result == {
        "app": MOVIE_NIGHT["currentApp"],
        "volumeSteps": -2,
        "muteToggled": False,
        "keysSent": 2,
    }


async def test_execute_volume_70_to_55(engine, connected, session_factory) -> None:
    """Test converging from 70 to 55 sends 15 down-steps and no up-steps."""
    session_factory.volume = 70
    await connected("tv1")
    engine.save("quiet", {"volume": 55})

    await engine.execute("quiet", "tv1")

    keys = session_factory.latest("tv1").keys
    assert keys.count(KEY_VOLUME_DOWN) == 15
    assert keys.count(KEY_VOLUME_UP) == 0


async def test_execute_toggles_mute_only_when_different(engine, connected, session_factory) -> None:
    """Test mute is toggled only when the current state differs."""
    manager = await connected("tv1")
    engine.save("silent", {"muted": True})
    engine.save("loud", {"muted": False})

    await engine.execute("loud", "tv1")
    assert KEY_VOLUME_MUTE not in session_factory.latest("tv1").keys

    result = await engine.execute("silent", "tv1")
    assert result["muteToggled"] is True
    assert session_factory.latest("tv1").keys.count(KEY_VOLUME_MUTE) == 1
    assert manager.store.get("tv1").muted is True


async def test_execute_unknown_scene(engine, connected) -> None:
    """Test executing a missing scene fails with SceneNotFound."""
    await connected("tv1")
    with pytest.raises(SceneNotFound):
        await engine.execute("nope", "tv1")


async def test_execute_disconnected_device(engine) -> None:
    """Test executing on a device without a session fails."""
    engine.save("movie", MOVIE_NIGHT)
    with pytest.raises(DeviceNotConnected):
        await engine.execute("movie", "tv1")


async def test_scenes_persist(tmp_path, manager) -> None:
    """Test scenes saved to a file store survive a restart."""
    path = tmp_path / "scenes.json"
    SceneEngine(JsonFileStore(path, Scene.from_dict), manager).save("movie", MOVIE_NIGHT)

    reloaded = SceneEngine(JsonFileStore(path, Scene.from_dict), manager)

    scene = reloaded.get("movie")
    assert scene.volume == 55
    assert scene.keys == ["DPAD_DOWN", KEY_DPAD_CENTER]
    assert scene.current_app == MOVIE_NIGHT["currentApp"]
