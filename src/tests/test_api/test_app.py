import json
import pytest
from offering_gateway.__main__ import OfferingGatewayApp, create_default_config, load_things

PARKING = {
    "name": "Parking",
    "properties": {
        "spots": {
            "type": "array",
            "items": {"type": "object", "properties": {"free": {"type": "boolean"}}},
            "forms": [{"href": "http://parking.local/spots"}]
        }
    }
}


def write_config(tmp_path, gateway_section, things):
    paths = []
    for i, td in enumerate(things):
        path = tmp_path / f"thing{i}.json"
        path.write_text(json.dumps(td))
        paths.append(str(path))
    config = {
        "api": {"host": "127.0.0.1", "port": 8099},
        "gateway": gateway_section,
        "things": paths,
        "logging": {"level": "INFO", "file": str(tmp_path / "logs" / "gateway.log")},
    }
    path = tmp_path / "config.yml"
    # JSON is valid YAML
    path.write_text(json.dumps(config))
    return str(path)


def test_load_things_skips_bad_files(tmp_path):
    good = tmp_path / "good.json"
    good.write_text(json.dumps(PARKING))
    bad = tmp_path / "bad.json"
    bad.write_text("{not json")
    things = load_things([str(good), str(bad), str(tmp_path / "missing.json")])
    assert [thing.name for thing in things] == ["Parking"]


@pytest.mark.asyncio
async def test_compatible_things_are_offered_directly(tmp_path, make_thing):
    sensor = make_thing().model_dump(by_alias=True, exclude_none=True)
    app = OfferingGatewayApp(write_config(tmp_path, {}, [PARKING, sensor]))

    await app.register_things(load_things(app.config.things))

    names = [offering.name for offering in app.offering_manager.to_register]
    assert "Parking-spots" in names
    assert "Sensor-Read-temperature" in names
    assert all(not route.uri.startswith("Parking") for route in app.gateway.routes)


@pytest.mark.asyncio
async def test_identical_things_are_aggregated(tmp_path, make_thing):
    things = [make_thing(base=f"http://s{i}.local").model_dump(by_alias=True, exclude_none=True) for i in range(2)]
    app = OfferingGatewayApp(write_config(tmp_path, {"use_aggregate": True, "use_merge": True}, things))

    await app.register_things(load_things(app.config.things))

    read = app.gateway.get_route("Sensor-Read-temperature")
    assert len(read.things) == 2
    assert app.gateway.get_route("Sensor-Read").aggregated
    offering_names = {offering.name for offering in app.offering_manager.to_register}
    assert offering_names == {route.uri for route in app.gateway.routes}


def test_invalid_config_exits(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("api: {}\n")
    with pytest.raises(SystemExit):
        OfferingGatewayApp(str(path))


def test_create_default_config(tmp_path):
    path = tmp_path / "config" / "default.yml"
    create_default_config(path)
    assert "gateway:" in path.read_text()
    # Existing files are left alone
    path.write_text("custom")
    create_default_config(path)
    assert path.read_text() == "custom"
