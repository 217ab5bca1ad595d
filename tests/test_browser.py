import json

import pytest

from tabhub import CDP, CDPEnvironment, CDPTab, ExtensionContext

from conftest import RecordingHost


class FakeWS:
    def __init__(self):
        self.sent = []
        self.closed = False

    def send(self, raw):
        self.sent.append(json.loads(raw))

    def close(self):
        self.closed = True


class FakeCDP:
    """Scripted CDP connection: canned command results, manual events."""

    def __init__(self, windows=None):
        self.windows = windows or {}
        self.sent = []
        self.fired = []
        self.callbacks = {}
        self.timeouts = []

    def on(self, event, callback, session_id=None):
        key = (event, session_id)
        self.callbacks.setdefault(key, []).append(callback)

        def unsubscribe():
            if callback in self.callbacks.get(key, []):
                self.callbacks[key].remove(callback)
        return unsubscribe

    def emit(self, event, params, session_id=None):
        for cb in list(self.callbacks.get((event, session_id), [])):
            cb(params)

    def send(self, method, params=None, session_id=None, timeout=30):
        self.sent.append((method, params, session_id))
        self.timeouts.append(timeout)
        params = params or {}
        if method == "Target.attachToTarget":
            return {"sessionId": "S-" + params["targetId"]}
        if method == "Browser.getWindowForTarget":
            return {"windowId": self.windows.get(params["targetId"], 1),
                    "bounds": {"width": 1024, "height": 768}}
        if method == "Target.createTarget":
            return {"targetId": "NEW"}
        return {}

    def fire(self, method, params=None, session_id=None):
        self.fired.append((method, params, session_id))


def page(target_id, url="https://a.example", title="A", kind="page"):
    return {"targetInfo": {"targetId": target_id, "type": kind, "url": url, "title": title}}


# ─── CDP transport ──────────────────────────────────────────────────

@pytest.fixture
def cdp():
    c = CDP("localhost:0")
    c._ws = FakeWS()
    return c


def test_response_resolves_command(cdp):
    future = cdp.send_async("Target.getTargets", {"filter": []}, session_id="S1")
    msg = cdp._ws.sent[-1]
    assert msg["method"] == "Target.getTargets"
    assert msg["sessionId"] == "S1"

    cdp.handle_message({"id": msg["id"], "result": {"targetInfos": []}})
    assert future.result(timeout=1) == {"targetInfos": []}


def test_error_response_raises(cdp):
    future = cdp.send_async("Page.navigate", {"url": "x"})
    cdp.handle_message({"id": cdp._ws.sent[-1]["id"], "error": {"message": "bad"}})
    with pytest.raises(RuntimeError, match="CDP"):
        future.result(timeout=1)


def test_send_times_out(cdp):
    with pytest.raises(TimeoutError):
        cdp.send("Page.enable", timeout=0.01)


def test_events_are_scoped_by_session(cdp):
    seen = []
    unsubscribe = cdp.on("Page.frameNavigated", lambda p: seen.append(p["n"]), "S1")
    cdp.handle_message({"method": "Page.frameNavigated", "params": {"n": 1}, "sessionId": "S1"})
    cdp.handle_message({"method": "Page.frameNavigated", "params": {"n": 2}, "sessionId": "S2"})
    cdp.handle_message({"method": "Page.frameNavigated", "params": {"n": 3}})
    unsubscribe()
    cdp.handle_message({"method": "Page.frameNavigated", "params": {"n": 4}, "sessionId": "S1"})
    assert seen == [1]


def test_events_go_through_dispatch():
    dispatched = []
    c = CDP("localhost:0", dispatch=lambda fn, *args: dispatched.append((fn, args)))
    c._ws = FakeWS()
    c.on("Target.targetCreated", print)
    c.handle_message({"method": "Target.targetCreated", "params": {"x": 1}})
    assert dispatched == [(print, ({"x": 1},))]


def test_close_fails_pending(cdp):
    ws = cdp._ws
    future = cdp.send_async("Page.enable")
    cdp.close()
    assert ws.closed
    assert not cdp.connected
    with pytest.raises(ConnectionError):
        future.result(timeout=1)


# ─── Tabs ───────────────────────────────────────────────────────────

@pytest.fixture
def fake():
    return FakeCDP()


@pytest.fixture
def tab(fake):
    t = CDPTab(1, page("T1")["targetInfo"], "S-T1", fake, window_id=1)
    t.attach()
    return t


def record(tab, *signals):
    seen = []
    for signal in signals:
        tab.on(signal, lambda params, s=signal: seen.append((s, params)))
    return seen


def test_attach_enables_page_domain(fake, tab):
    assert ("Page.enable", None, "S-T1") in fake.fired


def test_loading_signals_follow_main_frame(fake, tab):
    seen = record(tab, "did-start-loading", "did-stop-loading")
    fake.emit("Page.frameStartedLoading", {"frameId": "child"}, "S-T1")
    assert not tab.is_loading()

    fake.emit("Page.frameStartedLoading", {"frameId": "T1"}, "S-T1")
    assert tab.is_loading()
    fake.emit("Page.frameStoppedLoading", {"frameId": "T1"}, "S-T1")
    assert not tab.is_loading()
    assert [s for s, _ in seen] == ["did-start-loading", "did-stop-loading"]


def test_frame_navigation_signals(fake, tab):
    seen = record(tab, "did-start-navigation")
    fake.emit("Page.frameNavigated", {"frame": {"id": "T1", "url": "https://b.example"}}, "S-T1")
    fake.emit("Page.frameNavigated",
              {"frame": {"id": "F9", "parentId": "T1", "url": "https://ads.example"}}, "S-T1")

    (_, main), (_, sub) = seen
    assert main["is_main_frame"] and main["frame_routing_id"] == 0
    assert not sub["is_main_frame"] and sub["frame_routing_id"] == 1
    assert tab.url == "https://b.example"


def test_will_navigate_and_in_page(fake, tab):
    seen = record(tab, "will-navigate", "did-navigate-in-page")
    fake.emit("Page.frameRequestedNavigation", {"url": "https://c.example"}, "S-T1")
    fake.emit("Page.navigatedWithinDocument", {"frameId": "T1", "url": "https://a.example/#x"}, "S-T1")
    assert seen == [
        ("will-navigate", {"url": "https://c.example"}),
        ("did-navigate-in-page", {"url": "https://a.example/#x"}),
    ]
    assert tab.url == "https://a.example/#x"


def test_title_change_signal(tab):
    seen = record(tab, "page-title-updated")
    tab.update_info({"title": "A", "url": "https://a.example"})
    tab.update_info({"title": "B", "url": "https://a.example"})
    assert seen == [("page-title-updated", {"title": "B"})]


def test_destroy_emits_once_and_unsubscribes(fake, tab):
    seen = record(tab, "destroyed")
    tab.destroy()
    tab.destroy()
    assert len(seen) == 1
    assert not any(fake.callbacks.values())


def test_mutations_fire_commands(fake, tab):
    tab.load_url("https://d.example")
    tab.reload(ignore_cache=True)
    tab.set_audio_muted(True)
    tab.insert_css("body{color:red}")

    methods = [(m, p) for m, p, sid in fake.fired if sid == "S-T1" and m != "Page.enable"]
    assert methods[0] == ("Page.navigate", {"url": "https://d.example"})
    assert methods[1] == ("Page.reload", {"ignoreCache": True})
    assert methods[2][0] == "Runtime.evaluate"
    assert "m.muted = true" in methods[2][1]["expression"]
    assert "body{color:red}" in methods[3][1]["expression"]
    assert tab.audio_muted is True


# ─── Environment ────────────────────────────────────────────────────

@pytest.fixture
def browser(fake):
    env = CDPEnvironment(fake)
    ctx = ExtensionContext(environment=env, clock=lambda: 1000.0)
    host = RecordingHost()
    ctx.observe_extension_host(host)
    env.bind(ctx)
    yield env, ctx, host
    ctx.close()


def test_bind_starts_discovery(fake, browser):
    assert ("Target.setDiscoverTargets", {"discover": True}, None) in fake.sent


def test_page_target_becomes_tab(fake, browser):
    env, ctx, host = browser
    fake.emit("Target.targetCreated", page("T1"))
    fake.emit("Target.targetCreated", page("W1", kind="service_worker"))
    fake.emit("Target.targetCreated", page("D1", url="devtools://devtools/inspector.html"))

    (created,), = host.named("tabs.onCreated")
    assert created["url"] == "https://a.example"
    assert created["windowId"] == 1
    assert (created["width"], created["height"]) == (1024, 768)
    assert len(ctx.registry) == 1
    assert env.tab_for_target("T1").session_id == "S-T1"


def test_duplicate_target_is_attached_once(fake, browser):
    _, ctx, host = browser
    fake.emit("Target.targetCreated", page("T1"))
    fake.emit("Target.targetCreated", page("T1"))
    assert len(host.named("tabs.onCreated")) == 1


def test_title_change_becomes_update(fake, browser):
    _, _, host = browser
    fake.emit("Target.targetCreated", page("T1"))
    fake.emit("Target.targetInfoChanged", page("T1", title="B"))
    (tab_id, changes, _), = host.named("tabs.onUpdated")
    assert changes == {"title": "B"}


def test_last_tab_closing_closes_window(fake, browser):
    _, _, host = browser
    fake.emit("Target.targetCreated", page("T1"))
    fake.emit("Target.targetCreated", page("T2"))

    fake.emit("Target.targetDestroyed", {"targetId": "T1"})
    fake.emit("Target.targetDestroyed", {"targetId": "T2"})
    fake.emit("Target.targetDestroyed", {"targetId": "T2"})

    removed = host.named("tabs.onRemoved")
    assert [args[1]["isWindowClosing"] for args in removed] == [False, True]


def test_create_opens_new_window(fake):
    fake.windows["NEW"] = 5
    env = CDPEnvironment(fake)
    ctx = ExtensionContext(environment=env)
    env.bind(ctx)

    result = ctx.invoke("tabs.create", RecordingHost(), {"url": "https://n.example"})
    assert ("Target.createTarget", {"url": "https://n.example", "newWindow": True}, None) in fake.sent
    assert result["windowId"] == 5
    assert result["url"] == "https://n.example"
    assert env.window_by_id(5).size() == (1024, 768)


def test_host_window_resolution(fake, browser):
    env, _, _ = browser
    fake.emit("Target.targetCreated", page("T1"))
    assert env.parent_window_of(RecordingHost(window_id=1)).id == 1
    assert env.parent_window_of(RecordingHost()) is None


def test_round_trips_are_bounded(fake):
    env = CDPEnvironment(fake, timeout=1.5)
    env.bind(ExtensionContext(environment=env))
    fake.emit("Target.targetCreated", page("T1"))
    env.open_window("https://n.example")
    assert fake.timeouts and set(fake.timeouts) == {1.5}


def test_mute_change_signals_audio_state(tab):
    seen = record(tab, "audio-state-changed")
    tab.set_audio_muted(True)
    tab.set_audio_muted(True)
    tab.set_audio_muted(False)
    assert seen == [
        ("audio-state-changed", {"muted": True}),
        ("audio-state-changed", {"muted": False}),
    ]


def test_mute_command_reports_muted_info(fake, browser):
    _, ctx, host = browser
    fake.emit("Target.targetCreated", page("T1"))
    tab_id = host.named("tabs.onCreated")[0][0]["id"]

    ctx.invoke("tabs.update", RecordingHost(), tab_id, {"muted": True})

    (updated_id, changes, snapshot), = host.named("tabs.onUpdated")
    assert updated_id == tab_id
    assert changes == {"mutedInfo": {"muted": True}}
    assert snapshot["mutedInfo"] == {"muted": True}
