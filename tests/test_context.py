from tabhub import ExtensionContext, MailboxHost

from conftest import FakeTab, RecordingHost


def test_tab_lifecycle_scenario(context, env, host, make_tab, window):
    tab = make_tab(1, url="https://a.example", title="A", loading=True)

    (created,), = host.named("tabs.onCreated")
    assert created["id"] == 1
    assert created["status"] == "loading"
    assert created["url"] == "https://a.example"
    assert created["title"] == "A"

    tab.loading = False
    tab.emit("did-stop-loading")
    (tab_id, changes, snapshot), = host.named("tabs.onUpdated")
    assert (tab_id, changes) == (1, {"status": "complete"})
    assert snapshot["status"] == "complete"

    assert context.on_activated(1)
    assert host.named("tabs.onActivated") == [({"tabId": 1, "windowId": window.id},)]

    tab.emit("destroyed")
    assert host.named("tabs.onRemoved") == [(1, {"windowId": window.id, "isWindowClosing": False})]
    assert 1 not in context.cache
    assert context.registry.lookup(1) is None


def test_removal_happens_exactly_once(context, host, make_tab):
    tab = make_tab(1)
    tab.emit("destroyed")
    tab.emit("destroyed")
    assert context.on_removed(1) is False

    assert len(host.named("tabs.onRemoved")) == 1
    assert tab.listener_count() == 0
    assert 1 not in context.subscriptions


def test_signals_after_removal_are_ignored(context, host, make_tab):
    tab = make_tab(1)
    tab.emit("destroyed")
    tab.title = "late"
    context.on_updated(1)
    assert host.named("tabs.onUpdated") == []


def test_removed_tab_reports_closing_window(context, env, host, make_tab, window):
    tab = make_tab(1)
    env.close_window(window.id)
    tab.emit("destroyed")
    assert host.named("tabs.onRemoved") == [(1, {"windowId": window.id, "isWindowClosing": True})]


def test_never_cached_tab_reports_no_window(context, host):
    tab = FakeTab(5)
    context.registry.observe(tab)
    assert context.on_removed(5)
    assert host.named("tabs.onRemoved") == [(5, {"windowId": -1, "isWindowClosing": False})]


def test_only_one_tab_is_active(context, host, make_tab):
    for tab_id in (1, 2, 3):
        make_tab(tab_id)

    context.on_activated(1)
    context.on_activated(3)

    active = [tab_id for tab_id, snap in context.cache.items() if snap.active]
    assert active == [3]
    assert [args[0]["tabId"] for args in host.named("tabs.onActivated")] == [1, 3]


def test_tab_created_after_activation_is_inactive(context, make_tab):
    make_tab(1)
    context.on_activated(1)
    make_tab(2)
    assert context.cache.peek(1).active is True
    assert context.cache.peek(2).active is False


def test_activating_unknown_tab_is_noop(context, host):
    assert context.on_activated(12) is False
    assert host.named("tabs.onActivated") == []


def test_observe_tab_is_idempotent(context, host, env, window):
    tab = FakeTab(1)
    env.attach(tab, window)
    assert context.observe_tab(tab)
    listeners = tab.listener_count()
    assert not context.observe_tab(tab)
    assert tab.listener_count() == listeners
    assert len(host.named("tabs.onCreated")) == 1


def test_events_reach_every_host(context, make_tab):
    hosts = [RecordingHost(name) for name in ("ui", "background", "popup")]
    for h in hosts:
        context.observe_extension_host(h)
    make_tab(1)
    assert all(len(h.named("tabs.onCreated")) == 1 for h in hosts)


def test_destroyed_host_stops_receiving(context, make_tab):
    host = MailboxHost(host_id="bg", kind="backgroundPage")
    assert context.observe_extension_host(host)
    make_tab(1)
    host.close()
    make_tab(2)

    assert host not in context.broadcaster
    assert [name for name, _ in host.drain()] == ["tabs.onCreated"]


def test_close_releases_all_subscriptions(env, window):
    ctx = ExtensionContext(environment=env)
    tabs = [FakeTab(i) for i in (1, 2)]
    for tab in tabs:
        env.attach(tab, window)
        ctx.observe_tab(tab)
    ctx.observe_extension_host(RecordingHost())

    ctx.close()

    assert all(tab.listener_count() == 0 for tab in tabs)
    assert len(ctx.broadcaster) == 0
    assert ctx.observe_tab(FakeTab(3)) is False


def test_navigation_events_flow_through_context(context, host, make_tab):
    tab = make_tab(1, url="https://a.example")
    tab.emit("will-navigate", url="https://b.example")
    tab.url = "https://b.example"
    tab.emit("did-start-navigation", url="https://b.example", is_main_frame=True, frame_routing_id=3)

    names = [name for name, _ in host.events]
    assert names == [
        "tabs.onCreated",
        "webNavigation.onCreatedNavigationTarget",
        "webNavigation.onCommitted",
        "tabs.onUpdated",
    ]
    (commit,), = host.named("webNavigation.onCommitted")
    assert commit["timeStamp"] == 1000.0
