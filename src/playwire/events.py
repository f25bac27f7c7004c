"""Names of the events emitted by the proxies."""


class BrowserEvents:
    Disconnected = "disconnected"


class BrowserContextEvents:
    Close = "close"
    Console = "console"
    Page = "page"
    Request = "request"
    RequestFailed = "requestfailed"
    RequestFinished = "requestfinished"
    Response = "response"


class PageEvents:
    Close = "close"
    Console = "console"
    Crash = "crash"
    DOMContentLoaded = "domcontentloaded"
    FrameAttached = "frameattached"
    FrameDetached = "framedetached"
    FrameNavigated = "framenavigated"
    Load = "load"
    Popup = "popup"
    Request = "request"
    RequestFailed = "requestfailed"
    RequestFinished = "requestfinished"
    Response = "response"


class FrameEvents:
    Detached = "detached"
    LoadState = "loadstate"
    Navigated = "navigated"


LOAD_STATES = frozenset({"load", "domcontentloaded", "networkidle", "commit"})
