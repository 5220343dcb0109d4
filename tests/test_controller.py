"""Tests for drillmap.controller: the county/town/village state machine."""

import asyncio

import pytest

from drillmap.controller import DrillDownController
from drillmap.models import Level, ViewportState
from drillmap.projection import geographic_centroid
from drillmap.renderer import island_box_class
from drillmap.surface import BOXES_GROUP, HIGHLIGHT_GROUP, MAP_GROUP

from conftest import COUNTIES, FakeSource


@pytest.fixture
def selected():
    return []


@pytest.fixture
def controller(cfg, source, pacer, selected):
    return DrillDownController(cfg, source, on_region_selected=selected.append, pacer=pacer)


def _map_names(controller):
    return [element.feature.display_name for element in controller.surface.elements(MAP_GROUP)]


def _map_classes(controller):
    return {element.classes for element in controller.surface.elements(MAP_GROUP)}


async def _drill(controller, *names):
    await controller.start()
    for name in names:
        assert await controller.click(name)
        await controller.wait_idle()


class TestStart:
    def test_renders_root_counties(self, controller, source):
        assert asyncio.run(controller.start())
        assert controller.level is Level.COUNTY
        assert _map_names(controller) == [f["properties"]["name"] for f in COUNTIES["features"]]
        assert _map_classes(controller) == {("county",)}
        assert source.calls == [(Level.COUNTY, None)]

    def test_root_fetch_failure_leaves_surface_empty(self, controller, source):
        source.failures.add((Level.COUNTY, None))
        assert not asyncio.run(controller.start())
        assert controller.surface.elements(MAP_GROUP) == ()


class TestDrillDown:
    def test_county_click_shows_towns(self, controller, selected):
        asyncio.run(_drill(controller, "臺北市"))
        assert controller.level is Level.TOWN
        assert _map_names(controller) == ["大安區", "中山區"]
        assert _map_classes(controller) == {("town",)}
        assert selected == ["臺北市"]
        (highlight,) = controller.surface.elements(HIGHLIGHT_GROUP)
        assert highlight.feature.display_name == "臺北市"

    def test_county_click_zooms_to_county_scale(self, controller, cfg):
        asyncio.run(_drill(controller, "臺北市"))
        clicked = controller.highlighter.current
        assert controller.projection.viewport == ViewportState(
            center=geographic_centroid(clicked.geometry),
            scale=cfg.map.county_zoom_scale,
        )

    def test_full_path_fetches_in_order(self, controller, source, selected):
        asyncio.run(_drill(controller, "臺北市", "大安區"))
        assert source.calls[1:] == [(Level.TOWN, "臺北市"), (Level.VILLAGE, "大安區")]
        assert controller.level is Level.VILLAGE
        assert _map_names(controller) == ["龍門里", "古莊里"]
        assert controller.projection.scale == pytest.approx(100000.0)
        assert selected == ["臺北市", "大安區"]

    def test_village_click_never_fetches(self, controller, source, selected):
        asyncio.run(_drill(controller, "臺北市", "大安區"))
        calls_before = list(source.calls)
        viewport_before = controller.projection.viewport

        asyncio.run(controller.click("龍門里"))

        assert source.calls == calls_before
        assert controller.level is Level.VILLAGE
        assert controller.projection.viewport == viewport_before
        assert selected[-1] == "龍門里"
        (highlight,) = controller.surface.elements(HIGHLIGHT_GROUP)
        assert highlight.feature.display_name == "龍門里"

    def test_only_one_level_is_rendered(self, controller):
        asyncio.run(_drill(controller, "臺北市", "大安區"))
        assert _map_classes(controller) == {("village",)}

    def test_click_on_unknown_name(self, controller, source):
        asyncio.run(controller.start())
        assert not asyncio.run(controller.click("火星"))
        assert source.calls == [(Level.COUNTY, None)]


class TestFetchFailure:
    def test_town_fetch_failure_stays_at_county(self, controller, source, selected):
        source.failures.add((Level.TOWN, "臺北市"))
        asyncio.run(_drill(controller, "臺北市"))
        assert controller.level is Level.COUNTY
        assert _map_names(controller) == [f["properties"]["name"] for f in COUNTIES["features"]]
        assert controller.surface.elements(HIGHLIGHT_GROUP) == ()
        assert selected == []
        assert controller.projection.viewport == ViewportState(center=(120.0, 24.0), scale=10000.0)

    def test_retry_after_failure(self, controller, source, selected):
        source.failures.add((Level.TOWN, "臺北市"))
        asyncio.run(_drill(controller, "臺北市"))
        source.failures.clear()
        asyncio.run(controller.click("臺北市"))
        assert controller.level is Level.TOWN
        assert selected == ["臺北市"]

    def test_village_fetch_failure_stays_at_town(self, controller, source):
        source.failures.add((Level.VILLAGE, "大安區"))
        asyncio.run(_drill(controller, "臺北市", "大安區"))
        assert controller.level is Level.TOWN
        assert _map_names(controller) == ["大安區", "中山區"]
        (highlight,) = controller.surface.elements(HIGHLIGHT_GROUP)
        assert highlight.feature.display_name == "臺北市"


class TestReset:
    @pytest.mark.parametrize(
        "path",
        [(), ("臺北市",), ("臺北市", "大安區"), ("臺北市", "大安區", "龍門里")],
    )
    def test_reset_returns_to_root(self, controller, path):
        async def run():
            await _drill(controller, *path)
            return await controller.reset()

        assert asyncio.run(run())
        assert controller.level is Level.COUNTY
        assert _map_names(controller) == [f["properties"]["name"] for f in COUNTIES["features"]]
        assert _map_classes(controller) == {("county",)}
        assert controller.surface.elements(HIGHLIGHT_GROUP) == ()
        assert controller.highlighter.current is None
        assert controller.selection.name is None
        assert controller.projection.viewport == ViewportState(center=(120.0, 24.0), scale=10000.0)

    def test_reset_cancels_animation_in_flight(self, controller):
        async def run():
            await controller.start()
            await controller.click("臺北市")
            assert controller.animator.running
            await controller.reset()
            await asyncio.sleep(0)

        asyncio.run(run())
        assert not controller.animator.running
        assert controller.projection.viewport == ViewportState(center=(120.0, 24.0), scale=10000.0)

    def test_reset_does_not_notify_host(self, controller, selected):
        async def run():
            await _drill(controller, "臺北市")
            await controller.reset_map()

        asyncio.run(run())
        assert selected == ["臺北市"]

    def test_reset_redraws_island_boxes_once(self, controller):
        async def run():
            await controller.start()
            await controller.reset()
            await controller.reset()

        asyncio.run(run())
        assert len(controller.surface.elements(BOXES_GROUP, island_box_class("澎湖縣"))) == 1
        assert len(controller.surface.elements(BOXES_GROUP, island_box_class("金門縣"))) == 1


class TestOutlyingIslands:
    def test_penghu_towns_use_registered_offset_and_one_box(self, controller):
        asyncio.run(_drill(controller, "澎湖縣"))
        registered = controller.offsets.registry.get("澎湖縣")
        expected = controller.offsets.translation(registered.as_tuple())
        assert _map_names(controller) == ["馬公市", "湖西鄉"]
        assert {element.translate for element in controller.surface.elements(MAP_GROUP)} == {expected}
        assert len(controller.surface.elements(BOXES_GROUP, island_box_class("澎湖縣"))) == 1
        assert len(controller.surface.elements(BOXES_GROUP)) == 1

    def test_kinmen_highlight_and_children_share_offset(self, controller):
        asyncio.run(_drill(controller, "金門縣"))
        (highlight,) = controller.surface.elements(HIGHLIGHT_GROUP)
        assert highlight.translate == (80.0, 0.0)
        assert [element.translate for element in controller.surface.elements(MAP_GROUP)] == [(80.0, 0.0)]

    def test_kinmen_villages_inherit_county_offset(self, controller):
        asyncio.run(_drill(controller, "金門縣", "金城鎮"))
        assert controller.level is Level.VILLAGE
        assert [element.translate for element in controller.surface.elements(MAP_GROUP)] == [(80.0, 0.0)]
        (highlight,) = controller.surface.elements(HIGHLIGHT_GROUP)
        assert highlight.feature.display_name == "金城鎮"
        assert highlight.translate == (80.0, 0.0)

    def test_mainland_drill_clears_island_boxes(self, controller):
        asyncio.run(_drill(controller, "臺中市"))
        assert controller.surface.elements(BOXES_GROUP) == ()


class GatedSource(FakeSource):
    """Holds chosen lookups until the test releases them."""

    def __init__(self):
        super().__init__()
        self.gates = {}
        self.waiting = set()

    def hold(self, level, parent=None):
        gate = asyncio.Event()
        self.gates[(level, parent)] = gate
        return gate

    async def fetch(self, level, parent=None):
        gate = self.gates.pop((level, parent), None)
        if gate is not None:
            self.waiting.add((level, parent))
            await gate.wait()
            self.waiting.discard((level, parent))
        return await super().fetch(level, parent)


async def _until_waiting(source, level, parent=None):
    while (level, parent) not in source.waiting:
        await asyncio.sleep(0)


@pytest.fixture
def gated():
    return GatedSource()


@pytest.fixture
def gated_controller(cfg, gated, pacer, selected):
    return DrillDownController(cfg, gated, on_region_selected=selected.append, pacer=pacer)


class TestInterleavedFetches:
    def test_click_resolving_during_reset_is_discarded(self, gated_controller, gated):
        controller = gated_controller

        async def run():
            await controller.start()
            towns_gate = gated.hold(Level.TOWN, "臺北市")
            click = asyncio.create_task(controller.click("臺北市"))
            await _until_waiting(gated, Level.TOWN, "臺北市")

            counties_gate = gated.hold(Level.COUNTY)
            reset = asyncio.create_task(controller.reset())
            await _until_waiting(gated, Level.COUNTY)

            towns_gate.set()
            await click
            counties_gate.set()
            assert await reset
            await asyncio.sleep(0)

        asyncio.run(run())
        assert controller.level is Level.COUNTY
        assert _map_classes(controller) == {("county",)}
        assert _map_names(controller) == [f["properties"]["name"] for f in COUNTIES["features"]]
        assert controller.surface.elements(HIGHLIGHT_GROUP) == ()
        assert controller.selection.name is None
        assert not controller.animator.running
        assert controller.projection.viewport == ViewportState(center=(120.0, 24.0), scale=10000.0)

    def test_overlapping_clicks_keep_last_resolved_level(self, gated_controller, gated, selected):
        controller = gated_controller

        async def run():
            await controller.start()
            taipei_gate = gated.hold(Level.TOWN, "臺北市")
            taichung_gate = gated.hold(Level.TOWN, "臺中市")
            taipei = asyncio.create_task(controller.click("臺北市"))
            taichung = asyncio.create_task(controller.click("臺中市"))
            await _until_waiting(gated, Level.TOWN, "臺北市")
            await _until_waiting(gated, Level.TOWN, "臺中市")

            taichung_gate.set()
            await taichung
            taipei_gate.set()
            await taipei
            await controller.wait_idle()

        asyncio.run(run())
        assert controller.level is Level.TOWN
        assert _map_names(controller) == ["大安區", "中山區"]
        assert _map_classes(controller) == {("town",)}
        (highlight,) = controller.surface.elements(HIGHLIGHT_GROUP)
        assert highlight.feature.display_name == "臺北市"
        assert selected == ["臺中市", "臺北市"]
        assert controller.projection.viewport == ViewportState(
            center=geographic_centroid(highlight.feature.geometry),
            scale=20000.0,
        )


class TestOffsetCache:
    def test_level_change_keeps_only_clicked_and_visible_offsets(self, controller):
        asyncio.run(_drill(controller, "臺北市", "大安區"))
        # two villages plus the clicked town
        assert len(controller.offsets) == 3
        assert controller.offsets.cached_offset(controller.highlighter.current) == (400.0, 430.0)

    def test_kinmen_highlight_survives_pruning(self, controller):
        asyncio.run(_drill(controller, "金門縣"))
        assert len(controller.offsets) == 2
        assert controller.offsets.cached_offset(controller.highlighter.current) == (480.0, 430.0)
