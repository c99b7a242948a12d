"""Tests for high-level page actions.

Each action is checked for the protocol traffic it produces and for the
description it publishes on the ACTION_SUCCEEDED stream.
"""

import asyncio

import pytest

from conftest import FakePage, make_target, snapshot_payload
from steerbrowser.actor.page import Page
from steerbrowser.browser.session import SessionState
from steerbrowser.config import NavigationOptions
from steerbrowser.dom import ElementFinder, text_box
from steerbrowser.exceptions import ElementNotFoundError, NavigationTimeoutError, WaitTimeoutError

BUTTON_BOX = {'top': 30, 'left': 10, 'bottom': 50, 'right': 50}
INPUT_BOX = {'top': 60, 'left': 10, 'bottom': 80, 'right': 200}


def form() -> dict:
    return snapshot_payload(
        {'index': 0, 'nodeType': 'element', 'tagName': 'button', 'text': 'Submit', 'rect': BUTTON_BOX},
        {'index': 1, 'nodeType': 'text', 'text': 'Submit', 'parentIndex': 0, 'rect': BUTTON_BOX},
        {
            'index': 2,
            'nodeType': 'element',
            'tagName': 'input',
            'inputType': 'email',
            'attributes': {'name': 'email'},
            'rect': INPUT_BOX,
        },
    )


@pytest.fixture
def fake_page(factory) -> FakePage:
    return FakePage(form()).install(factory)


@pytest.fixture
def page(session, fake_page) -> Page:
    return Page(session, finder=ElementFinder(session, retry_interval=5, retry_timeout=50))


@pytest.fixture
def descriptions(page) -> list[str]:
    seen = []
    page.on_success(lambda event: seen.append(event.description))
    return seen


def sent(factory, method: str) -> list[dict]:
    return [params for m, params in factory.last.sent if m == method]


class TestNavigationActions:
    """Tests for goto, reload and history navigation."""

    @pytest.mark.asyncio
    async def test_goto_adds_scheme(self, page, session, factory, descriptions):
        def navigate(params):
            connection = factory.last
            loop = asyncio.get_running_loop()
            loop.call_soon(
                connection.emit,
                'Network.requestWillBeSent',
                {'requestId': 'R1', 'request': {'url': 'http://example.com/'}},
            )
            loop.call_soon(
                connection.emit,
                'Network.responseReceived',
                {'requestId': 'R1', 'response': {'url': 'http://example.com/', 'status': 200}},
            )
            return {'frameId': 'F1'}

        factory.responders['Page.navigate'] = navigate
        await session.connect()

        await page.goto('example.com')

        assert sent(factory, 'Page.navigate') == [{'url': 'http://example.com'}]
        assert descriptions == ['Navigated to URL http://example.com']
        await session.close()

    @pytest.mark.asyncio
    async def test_reload(self, page, session, factory, descriptions):
        await session.connect()

        await page.reload(ignore_cache=True)

        assert sent(factory, 'Page.reload') == [{'ignoreCache': True}]
        assert descriptions == ['http://example.com/ reloaded']
        await session.close()

    @pytest.mark.asyncio
    async def test_go_back_to_blank_skips_waiting(self, page, session, factory, fake_page, descriptions):
        factory.responders['Page.getNavigationHistory'] = {
            'currentIndex': 1,
            'entries': [{'id': 11, 'url': 'about:blank'}, {'id': 12, 'url': 'http://example.com/'}],
        }
        fake_page.ready = False
        await session.connect()

        await page.go_back()

        assert sent(factory, 'Page.navigateToHistoryEntry') == [{'entryId': 11}]
        assert descriptions == ['Performed clicking on browser back button']
        await session.close()

    @pytest.mark.asyncio
    async def test_go_forward_at_end_of_history(self, page, session, factory, descriptions):
        factory.responders['Page.getNavigationHistory'] = {
            'currentIndex': 0,
            'entries': [{'id': 11, 'url': 'http://example.com/'}],
        }
        await session.connect()

        await page.go_forward()

        assert sent(factory, 'Page.navigateToHistoryEntry') == []
        assert descriptions == []
        await session.close()

    @pytest.mark.asyncio
    async def test_url_and_title(self, page, session):
        await session.connect()

        assert await page.current_url() == 'http://example.com/'
        assert await page.title() == 'Example Domain'
        await session.close()

    @pytest.mark.asyncio
    async def test_switch_to(self, page, session, descriptions):
        await session.connect()

        await page.switch_to('Dashboard')

        assert session.target.id == 'PAGE-TWO'
        assert descriptions == ['Switched to tab with URL http://localhost:3000/app']
        await session.close()

    @pytest.mark.asyncio
    async def test_open_blank_tab(self, page, session, factory, directory, descriptions):
        factory.responders['Target.createTarget'] = lambda params: (
            directory.targets.append(make_target('PAGE-NEW')) or {'targetId': 'PAGE-NEW'}
        )
        await session.connect()

        await page.open_tab()

        assert session.target.id == 'PAGE-NEW'
        assert sent(factory, 'Page.navigate') == []
        assert descriptions == ['Opened tab with URL about:blank']
        await session.close()

    @pytest.mark.asyncio
    async def test_open_tab_navigates_new_tab(self, page, session, factory, directory, descriptions):
        factory.responders['Target.createTarget'] = lambda params: (
            directory.targets.append(make_target('PAGE-NEW')) or {'targetId': 'PAGE-NEW'}
        )
        factory.responders['Page.navigate'] = {'frameId': 'F1'}
        await session.connect()

        await page.open_tab('data:text/html,<p>hi</p>')

        assert factory.last.ws_url.endswith('/PAGE-NEW')
        assert sent(factory, 'Page.navigate') == [{'url': 'data:text/html,<p>hi</p>'}]
        assert descriptions == ['Opened tab with URL data:text/html,<p>hi</p>']
        await session.close()

    @pytest.mark.asyncio
    async def test_close_tab(self, page, session, factory, directory, descriptions):
        factory.responders['Target.closeTarget'] = lambda params: directory.targets.remove(
            next(t for t in directory.targets if t.id == params['targetId'])
        ) or {}
        await session.connect()

        await page.close_tab('Dashboard')
        await page.close_tab()

        assert descriptions == [
            'Closed tab(s) matching Dashboard',
            'Closed current tab matching http://example.com/',
        ]
        assert session.state is SessionState.DISCONNECTED


class TestPointerActions:
    """Tests for click, double_click and hover."""

    @pytest.mark.asyncio
    async def test_click_dispatches_mouse_sequence(self, page, session, factory, descriptions):
        await session.connect()

        await page.click('Submit')

        events = sent(factory, 'Input.dispatchMouseEvent')
        assert [e['type'] for e in events] == ['mouseMoved', 'mousePressed', 'mouseReleased']
        assert events[1] == {'type': 'mousePressed', 'x': 30, 'y': 40, 'button': 'left', 'clickCount': 1}
        assert descriptions == ['Clicked element matching text "Submit" 1 times']
        await session.close()

    @pytest.mark.asyncio
    async def test_tap_dispatches_touch_sequence(self, page, session, factory, descriptions):
        await session.connect()

        await page.tap('Submit')

        assert sent(factory, 'Input.dispatchTouchEvent') == [
            {'type': 'touchStart', 'touchPoints': [{'x': 30, 'y': 40}]},
            {'type': 'touchEnd', 'touchPoints': []},
        ]
        assert sent(factory, 'Overlay.highlightNode') == []
        assert descriptions == ['Tapped on the Submit']
        await session.close()

    @pytest.mark.asyncio
    async def test_highlight(self, page, session, factory, descriptions):
        session.config.highlight_time = 0
        await session.connect()

        await page.highlight('Submit')

        methods = [m for m in factory.last.methods() if m.startswith('Overlay.')]
        assert methods == ['Overlay.enable', 'Overlay.highlightNode', 'Overlay.hideHighlight']
        highlighted = sent(factory, 'Overlay.highlightNode')[0]
        assert highlighted['objectId'].startswith('node-')
        assert highlighted['highlightConfig']['borderColor'] == {'r': 255, 'g': 0, 'b': 0, 'a': 1}
        assert descriptions == ['Highlighted the Submit']
        await session.close()

    @pytest.mark.asyncio
    async def test_highlight_on_action(self, page, session, factory):
        session.config.highlight_on_action = True
        session.config.highlight_time = 0
        await session.connect()

        await page.click('Submit')
        await page.tap('Submit')

        assert len(sent(factory, 'Overlay.highlightNode')) == 2
        await session.close()

    @pytest.mark.asyncio
    async def test_click_skips_covered_candidates(self, page, session, factory, fake_page):
        fake_page.element_results['elementsFromPoint'] = lambda object_id: object_id == 'node-0'
        await session.connect()

        await page.click('Submit')

        scrolled = [oid for oid, source in fake_page.element_calls if 'scrollIntoViewIfNeeded' in source]
        assert scrolled == ['node-1', 'node-0']
        assert len(sent(factory, 'Input.dispatchMouseEvent')) == 3
        await session.close()

    @pytest.mark.asyncio
    async def test_click_nothing_clickable(self, page, session, factory, fake_page):
        fake_page.element_results['elementsFromPoint'] = False
        await session.connect()

        with pytest.raises(ElementNotFoundError) as exc_info:
            await page.click('Submit')

        assert exc_info.value.reason == 'no clickable elements'
        assert sent(factory, 'Input.dispatchMouseEvent') == []
        await session.close()

    @pytest.mark.asyncio
    async def test_click_missing_element(self, page, session):
        await session.connect()

        with pytest.raises(ElementNotFoundError):
            await page.click('Cancel')
        await session.close()

    @pytest.mark.asyncio
    async def test_double_click(self, page, session, factory):
        await session.connect()

        await page.double_click('Submit')

        events = sent(factory, 'Input.dispatchMouseEvent')
        assert [(e['type'], e.get('clickCount')) for e in events] == [
            ('mouseMoved', None),
            ('mousePressed', 1),
            ('mouseReleased', 1),
            ('mousePressed', 2),
            ('mouseReleased', 2),
        ]
        await session.close()

    @pytest.mark.asyncio
    async def test_right_click(self, page, session, factory):
        await session.connect()

        await page.click('Submit', button='right')

        assert sent(factory, 'Input.dispatchMouseEvent')[1]['button'] == 'right'
        await session.close()

    @pytest.mark.asyncio
    async def test_hover(self, page, session, factory, descriptions):
        await session.connect()

        await page.hover('Submit')

        assert sent(factory, 'Input.dispatchMouseEvent') == [{'type': 'mouseMoved', 'x': 30, 'y': 40}]
        assert descriptions == ['Hovered over the Submit']
        await session.close()

    @pytest.mark.asyncio
    async def test_click_waits_for_navigation(self, page, session, factory):
        def press(params):
            if params['type'] == 'mouseReleased':
                connection = factory.last
                connection.emit('Page.frameScheduledNavigation', {'frameId': 'F1'})
                asyncio.get_running_loop().call_later(
                    0.02, connection.emit, 'Page.frameNavigated', {'frame': {'id': 'F1'}}
                )
            return {}

        factory.responders['Input.dispatchMouseEvent'] = press
        await session.connect()

        await page.click('Submit')

        assert page.synchronizer.pending_markers == 0
        await session.close()

    @pytest.mark.asyncio
    async def test_click_navigation_timeout(self, page, session, factory):
        def press(params):
            if params['type'] == 'mouseReleased':
                factory.last.emit('Page.frameScheduledNavigation', {'frameId': 'F1'})
            return {}

        factory.responders['Input.dispatchMouseEvent'] = press
        await session.connect()

        with pytest.raises(NavigationTimeoutError) as exc_info:
            await page.click('Submit', options=NavigationOptions(navigation_timeout=30))

        assert '30ms' in str(exc_info.value)
        await session.close()


class TestKeyboardActions:
    """Tests for write, clear, press and focus."""

    @pytest.mark.asyncio
    async def test_write_into_text_box(self, page, session, factory, fake_page, descriptions):
        await session.connect()

        await page.write('hi', into=text_box(attributes={'name': 'email'}))

        keys = sent(factory, 'Input.dispatchKeyEvent')
        assert [(k['type'], k['key']) for k in keys] == [
            ('keyDown', 'h'),
            ('keyUp', 'h'),
            ('keyDown', 'i'),
            ('keyUp', 'i'),
        ]
        assert keys[0]['text'] == 'h'
        assert 'text' not in keys[1]
        focused = [oid for oid, source in fake_page.element_calls if 'cannot focus element' in source]
        assert focused == ['node-2']
        assert descriptions == ['Wrote hi into the text box (name=email)']
        await session.close()

    @pytest.mark.asyncio
    async def test_write_into_focused_element(self, page, session, factory, descriptions):
        await session.connect()

        await page.write('a\n')

        keys = [k['key'] for k in sent(factory, 'Input.dispatchKeyEvent') if k['type'] == 'keyDown']
        assert keys == ['a', 'Enter']
        assert descriptions == ['Wrote a\n into the focused element']
        await session.close()

    @pytest.mark.asyncio
    async def test_write_requires_editable_focus(self, page, session, factory, fake_page):
        fake_page.editable = False
        session.config.retry_timeout = 20
        await session.connect()

        with pytest.raises(WaitTimeoutError):
            await page.write('nope')

        assert sent(factory, 'Input.dispatchKeyEvent') == []
        await session.close()

    @pytest.mark.asyncio
    async def test_press_combination(self, page, session, factory, descriptions):
        await session.connect()

        await page.press(['Control', 'a'])

        keys = sent(factory, 'Input.dispatchKeyEvent')
        assert [(k['type'], k['key']) for k in keys] == [
            ('keyDown', 'Control'),
            ('keyDown', 'a'),
            ('keyUp', 'a'),
            ('keyUp', 'Control'),
        ]
        assert all(k['modifiers'] == 2 for k in keys)
        assert 'text' not in keys[1]
        assert descriptions == ['Pressed the Control + a key']
        await session.close()

    @pytest.mark.asyncio
    async def test_clear(self, page, session, factory, fake_page, descriptions):
        await session.connect()

        await page.clear(text_box())

        assert any('selectall' in e for e in fake_page.expressions)
        keys = sent(factory, 'Input.dispatchKeyEvent')
        assert [(k['type'], k['key']) for k in keys] == [('keyDown', 'Backspace'), ('keyUp', 'Backspace')]
        assert descriptions == ['Cleared element text box']
        await session.close()

    @pytest.mark.asyncio
    async def test_focus_and_scroll(self, page, session, descriptions):
        await session.connect()

        await page.focus(text_box())
        await page.scroll_to('Submit')

        assert descriptions == ['Focussed on the text box', 'Scrolled to the Submit']
        await session.close()


class TestEvaluate:
    """Tests for evaluate."""

    @pytest.mark.asyncio
    async def test_expression_wrapped_in_function(self, page, session, fake_page, descriptions):
        fake_page.script_result = 2
        await session.connect()

        assert await page.evaluate('1 + 1') == 2
        assert '(function() { return (1 + 1); })()' in fake_page.expressions
        assert descriptions == ['Evaluated given script. Result:2']
        await session.close()

    @pytest.mark.asyncio
    async def test_function_with_args(self, page, session, fake_page):
        fake_page.script_result = 'ok'
        await session.connect()

        await page.evaluate('(a, b) => a + b', args=[1, 2])

        assert '((a, b) => a + b)(1, 2)' in fake_page.expressions
        await session.close()

    @pytest.mark.asyncio
    async def test_function_on_element(self, page, session, fake_page):
        fake_page.element_results['(this, ...args)'] = 'BUTTON'
        await session.connect()

        result = await page.evaluate('(element) => element.tagName', 'Submit')

        assert result == 'BUTTON'
        assert fake_page.element_calls[-1][0] == 'node-1'
        await session.close()


class TestDialogs:
    """Tests for dialog handlers."""

    @pytest.mark.asyncio
    async def test_confirm_handler_and_accept(self, page, session, factory, descriptions):
        await session.connect()
        seen = []

        async def on_confirm(event):
            seen.append(event.message)
            await page.accept()

        page.confirm('Leave page?', on_confirm)
        factory.last.emit('Page.javascriptDialogOpening', {'type': 'confirm', 'message': 'Leave page?'})
        await session.event_bus.wait_for_idle()

        assert seen == ['Leave page?']
        assert sent(factory, 'Page.handleJavaScriptDialog') == [{'accept': True, 'promptText': ''}]
        assert descriptions == ['Accepted dialog']
        await session.close()

    @pytest.mark.asyncio
    async def test_handler_only_for_matching_message(self, page, session, factory):
        await session.connect()
        seen = []
        page.alert('Saved', seen.append)

        factory.last.emit('Page.javascriptDialogOpening', {'type': 'alert', 'message': 'Error'})
        factory.last.emit('Page.javascriptDialogOpening', {'type': 'alert', 'message': 'Saved'})
        factory.last.emit('Page.javascriptDialogOpening', {'type': 'alert', 'message': 'Saved'})

        assert [event.message for event in seen] == ['Saved']
        await session.close()

    @pytest.mark.asyncio
    async def test_prompt_accept_with_text_and_dismiss(self, page, session, factory):
        await session.connect()

        await page.accept('Jane')
        await page.dismiss()

        assert sent(factory, 'Page.handleJavaScriptDialog') == [
            {'accept': True, 'promptText': 'Jane'},
            {'accept': False},
        ]
        await session.close()

    @pytest.mark.asyncio
    async def test_beforeunload(self, page, session, factory):
        await session.connect()
        seen = []
        page.beforeunload(seen.append)

        factory.last.emit('Page.javascriptDialogOpening', {'type': 'beforeunload', 'message': ''})

        assert len(seen) == 1
        await session.close()


class TestObserveMode:
    """Tests for the observe delay."""

    @pytest.mark.asyncio
    async def test_actions_delayed(self, page, session):
        session.config.observe = True
        session.config.observe_time = 50
        await session.connect()
        loop = asyncio.get_running_loop()

        started = loop.time()
        await page.hover('Submit')

        assert loop.time() - started >= 0.045
        await session.close()
