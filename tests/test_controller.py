import logging
import unittest
from io import BytesIO

from jinja2 import DictLoader, Environment

from minvc import (
    Controller,
    RequestPart,
    ViewRenderer,
    WSGIRequest,
    WSGIResponse,
    extract_filename,
    get_action,
    MAIN_VIEW_ATTRIBUTE,
)
from minvc.exceptions import ResponseCommittedError

LOGGER = logging.getLogger("tests.controller")


def make_request(path="/", method="GET"):
    return WSGIRequest({
        'REQUEST_METHOD': method,
        'PATH_INFO': path,
        'SERVER_NAME': 'testserver',
        'SERVER_PORT': '8080',
        'wsgi.input': BytesIO(b""),
        'wsgi.url_scheme': 'http',
    })


def make_renderer(templates, logger=None):
    return ViewRenderer(Environment(loader=DictLoader(templates)), logger=logger)


class TestGetAction(unittest.TestCase):

    def test_last_segment_lower_cased(self):
        self.assertEqual(get_action("/shop/Cart/CheckOut", LOGGER), "checkout")

    def test_empty_segments_are_skipped(self):
        self.assertEqual(get_action("/shop/cart//", LOGGER), "cart")

    def test_no_segments(self):
        self.assertIsNone(get_action("/", LOGGER))
        self.assertIsNone(get_action("", LOGGER))

    def test_full_path_includes_base_path(self):
        request = WSGIRequest({"SCRIPT_NAME": "/app", "PATH_INFO": "/shop/index"})
        self.assertEqual(request.full_path, "/app/shop/index")

    def test_full_path_decodes_utf8(self):
        # PEP 3333: the path arrives as UTF-8 bytes decoded as latin-1
        request = WSGIRequest({"PATH_INFO": "/shop/café".encode("utf-8").decode("latin-1")})
        self.assertEqual(request.full_path, "/shop/café")
        self.assertEqual(get_action(request.full_path, LOGGER), "café")

    def test_full_path_outside_latin1_raises(self):
        with self.assertRaises(UnicodeError):
            WSGIRequest({"PATH_INFO": "/shop/€"}).full_path

    def test_request_url(self):
        request = make_request("/shop/index")
        self.assertEqual(request.url, "http://testserver:8080/shop/index")


class TestViewRenderer(unittest.TestCase):

    def test_view_data_becomes_attributes(self):
        renderer = make_renderer({})
        seen = []
        renderer.forward = lambda request, response: seen.append(dict(request.attributes))
        request = make_request()
        renderer.render(request, WSGIResponse(), "home/index.html",
                        {"title": "Home", "items": [1, 2], "user": "ada"})
        self.assertEqual(len(seen), 1)
        self.assertEqual(len(seen[0]), 4)
        self.assertEqual(seen[0][MAIN_VIEW_ATTRIBUTE], "home/index.html")
        self.assertEqual(seen[0]["user"], "ada")

    def test_render_without_view_data(self):
        renderer = make_renderer({})
        seen = []
        renderer.forward = lambda request, response: seen.append(dict(request.attributes))
        renderer.render(make_request(), WSGIResponse(), "plain.html")
        self.assertEqual(seen, [{MAIN_VIEW_ATTRIBUTE: "plain.html"}])

    def test_layout_includes_view(self):
        renderer = make_renderer({
            "shared/layout.html": "[{% include partialViewMain %}]",
            "hello.html": "Hello {{ name }} via {{ request.method }}",
        })
        response = WSGIResponse()
        renderer.render(make_request(method="POST"), response, "hello.html", {"name": "Ada"})
        self.assertEqual(response.body, "[Hello Ada via POST]")
        self.assertTrue(response.committed)

    def test_custom_layout_path(self):
        renderer = ViewRenderer(Environment(loader=DictLoader({
            "site.html": "<main>{% include partialViewMain %}</main>",
            "v.html": "v",
        })), layout_path="site.html")
        response = WSGIResponse()
        renderer.render(make_request(), response, "v.html")
        self.assertEqual(response.body, "<main>v</main>")

    def test_missing_layout_is_logged(self):
        renderer = make_renderer({})
        response = WSGIResponse()
        with self.assertLogs("minvc.view", level="ERROR") as cm:
            renderer.render(make_request(), response, "hello.html")
        self.assertEqual(len(cm.records), 1)
        self.assertEqual(response.body, "")
        self.assertFalse(response.committed)

    def test_missing_view_is_logged(self):
        renderer = make_renderer({"shared/layout.html": "{% include partialViewMain %}"})
        response = WSGIResponse()
        with self.assertLogs("minvc.view", level="ERROR"):
            renderer.render(make_request(), response, "nope.html")
        self.assertEqual(response.body, "")

    def test_committed_response_is_left_alone(self):
        renderer = make_renderer({"shared/layout.html": "layout"})
        response = WSGIResponse()
        response.write("first")
        with self.assertLogs("minvc.view", level="ERROR"):
            renderer.render(make_request(), response, "hello.html")
        self.assertEqual(response.body, "first")


class TestController(unittest.TestCase):

    def setUp(self):
        self.renderer = make_renderer({
            "shared/layout.html": "{{ title }}|{% include partialViewMain %}",
            "shared/http_not_found.html": "missing {{ request.path }}",
            "index.html": "index",
        })
        self.controller = Controller(self.renderer, logger=LOGGER)

    def test_not_found(self):
        response = WSGIResponse()
        self.controller.not_found(make_request("/x/y"), response)
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.body, "Http Not Found|missing /x/y")

    def test_not_found_after_commit_keeps_status(self):
        response = WSGIResponse()
        response.write("done")
        with self.assertLogs("minvc.view", level="ERROR"):
            self.controller.not_found(make_request("/x/y"), response)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.body, "done")

    def test_custom_not_found_path(self):
        controller = Controller(self.renderer, not_found_path="index.html", logger=LOGGER)
        response = WSGIResponse()
        controller.dispatch(make_request("/nothing"), response)
        self.assertEqual(response.body, "Http Not Found|index")

    def test_injected_logger_records_failures(self):
        def broken(request, response):
            raise KeyError("oops")
        self.controller.add_action("broken", broken)
        with self.assertLogs("tests.controller", level="ERROR") as cm:
            self.controller.dispatch(make_request("/broken"), WSGIResponse())
        self.assertEqual(len(cm.records), 1)

    def test_dispatch_returns_response(self):
        self.controller.add_action(
            "index", lambda request, response: self.controller.render(request, response, "index.html"))
        response = WSGIResponse()
        self.assertIs(self.controller.dispatch(make_request("/INDEX"), response), response)
        self.assertEqual(response.body, "|index")

    def test_redirect_local(self):
        request = WSGIRequest({'REQUEST_METHOD': 'GET', 'SCRIPT_NAME': '/app/', 'PATH_INFO': '/x'})
        response = WSGIResponse()
        self.controller.redirect_local(request, response, "/home")
        self.assertEqual(response.status_code, 302)
        self.assertEqual(response.get_header("Location"), "/app/home")

    def test_second_redirect_is_logged(self):
        request = make_request()
        response = WSGIResponse()
        self.controller.redirect_local(request, response, "/one")
        with self.assertLogs("tests.controller", level="ERROR"):
            self.controller.redirect_local(request, response, "/two")
        self.assertEqual(response.get_header("Location"), "/one")

    def test_actions_table(self):
        def listAction(request, response):
            pass
        self.controller.action()(listAction)
        self.controller.add_action("Show", lambda request, response: None)
        self.assertEqual(sorted(self.controller.actions), ["listaction", "showaction"])
        self.assertIs(self.controller.get_action_handler("LIST"), listAction)
        self.assertIsNone(self.controller.get_action_handler(None))


class TestRequest(unittest.TestCase):

    def test_multipart_detected_through_header_lookup(self):
        request = WSGIRequest({
            'REQUEST_METHOD': 'POST',
            'PATH_INFO': '/upload/save',
            'CONTENT_TYPE': 'Multipart/Form-Data; boundary=XyZ',
            'CONTENT_LENGTH': '0',
            'wsgi.input': BytesIO(b""),
        })
        self.assertEqual(request.get_header("content-type"), 'Multipart/Form-Data; boundary=XyZ')
        self.assertTrue(request.is_multipart)

    def test_not_multipart_without_content_type(self):
        request = WSGIRequest({'REQUEST_METHOD': 'POST', 'PATH_INFO': '/x'})
        self.assertIsNone(request.get_header("Content-Type"))
        self.assertFalse(request.is_multipart)
        self.assertEqual(request.parts, [])


class TestResponse(unittest.TestCase):

    def test_write_twice_raises(self):
        response = WSGIResponse()
        response.write("a")
        with self.assertRaises(ResponseCommittedError):
            response.write("b")


class TestExtractFilename(unittest.TestCase):

    def part(self, disposition):
        return RequestPart({"content-disposition": disposition}, b"")

    def test_quoted_filename(self):
        part = self.part('form-data; name="file"; filename="a b.txt"')
        self.assertEqual(extract_filename(part), "a b.txt")

    def test_whitespace_is_trimmed(self):
        part = self.part('form-data; name="file";   filename =  "report.pdf"  ')
        self.assertEqual(extract_filename(part), "report.pdf")

    def test_no_filename_segment(self):
        self.assertIsNone(extract_filename(self.part('form-data; name="note"')))

    def test_no_disposition_header(self):
        self.assertIsNone(extract_filename(RequestPart({}, b"")))

    def test_header_lookup_is_case_insensitive(self):
        part = RequestPart({"content-disposition": 'form-data; filename="x"'}, b"")
        self.assertEqual(part.get_header("Content-Disposition"), 'form-data; filename="x"')

    def test_unvalidated_names_pass_through(self):
        part = self.part('form-data; name="file"; filename="../../etc/passwd"')
        self.assertEqual(extract_filename(part), "../../etc/passwd")
        self.assertEqual(extract_filename(self.part('form-data; filename=""')), "")


if __name__ == '__main__':
    unittest.main()
