"""Shared fakes for tab core tests."""

import pytest

from tabhub import ExtensionContext, StaticEnvironment


class FakeTab:
    """In-memory TabHandle with directly settable live state."""

    def __init__(self, tab_id, url="about:blank", title="", loading=False,
                 audible=False, muted=False, process_id=100):
        self.id = tab_id
        self.url = url
        self.title = title
        self.favicon = None
        self.audio_muted = muted
        self.process_id = process_id
        self.loading = loading
        self.audible = audible
        self.loaded = []
        self.reloads = []
        self.css = []
        self._signals = {}

    def is_loading(self):
        return self.loading

    def is_audible(self):
        return self.audible

    def load_url(self, url):
        self.loaded.append(url)

    def reload(self, ignore_cache=False):
        self.reloads.append(ignore_cache)

    def set_audio_muted(self, muted):
        self.audio_muted = muted

    def insert_css(self, code):
        self.css.append(code)

    def on(self, signal, callback):
        self._signals.setdefault(signal, []).append(callback)

        def unsubscribe():
            if callback in self._signals.get(signal, []):
                self._signals[signal].remove(callback)
        return unsubscribe

    def once(self, signal, callback):
        def wrapper(params):
            unsubscribe()
            callback(params)
        unsubscribe = self.on(signal, wrapper)
        return unsubscribe

    def emit(self, signal, **params):
        for cb in list(self._signals.get(signal, [])):
            cb(params)

    def listener_count(self):
        return sum(len(v) for v in self._signals.values())


class RecordingHost:
    """Extension host that records every delivered event."""

    def __init__(self, host_id="host", window_id=None):
        self.id = host_id
        self.window_id = window_id
        self.events = []

    def send(self, event_name, *args):
        self.events.append((event_name, args))

    def named(self, event_name):
        return [args for name, args in self.events if name == event_name]


class BrokenHost:
    id = "broken"

    def send(self, event_name, *args):
        raise ConnectionError("host went away")


@pytest.fixture
def env():
    return StaticEnvironment()


@pytest.fixture
def window(env):
    return env.add_window(width=1280, height=720)


@pytest.fixture
def context(env):
    ctx = ExtensionContext(environment=env, clock=lambda: 1000.0)
    yield ctx
    ctx.close()


@pytest.fixture
def host(context):
    h = RecordingHost()
    context.observe_extension_host(h)
    return h


@pytest.fixture
def make_tab(env, window, context):
    """Create a tab in `window` and start observing it."""
    def factory(tab_id, observe=True, **kw):
        tab = FakeTab(tab_id, **kw)
        env.attach(tab, window)
        if observe:
            context.observe_tab(tab)
        return tab
    return factory
