import os
import re
from urllib.parse import urlsplit

from flask import Response, current_app, json, render_template, request, send_file
from jinja2 import TemplateError
from pydantic import BaseModel
from werkzeug.exceptions import BadRequest

from requestkit_backend.requestkitUtils.errors import ContentTypeError, ResponseAlreadyRenderedError


ID_PATTERN = re.compile(r"/([0-9]+)\Z")


class RequestHelper:
    """
    Convenience accessors over one request and the response it produces.

    Create one per request, inside a view:

        helper = RequestHelper()
        params = helper.params1st()
        return helper.render_json({"ok": True})

    Each render_* method builds the response for the request; a helper renders
    at most one.
    """

    def __init__(self, req=None):
        self.request = req if req is not None else request._get_current_object()
        self.response = None
        self.id = self._id_from_path(self.request.path)

    @staticmethod
    def _id_from_path(path):
        # /clientes/autorizar/33 -> 33
        if not path or path == "/":
            return None
        match = ID_PATTERN.search(path)
        return int(match.group(1)) if match else None

    def get_base_url(self) -> str:
        """
        Absolute URL of the deployed app, up to the path.
        https://example.com:8082/webapp/modulo/accion?query=123 -> https://example.com:8082
        """
        parts = urlsplit(self.request.url)
        return f"{parts.scheme}://{parts.netloc}"

    def is_xhr(self) -> bool:
        xhr = self.request.headers.get("X-Requested-With")
        return xhr is not None and xhr.lower() == "xmlhttprequest"

    def get_user(self):
        """User name authenticated by the container, if any."""
        return self.request.remote_user

    def params1st(self) -> dict:
        """Query and form parameters; only the first value of a repeated parameter is kept."""
        params = self.request.values.to_dict(flat=True)
        if self.id is not None:
            params["id"] = str(self.id)
        return params

    # --- JSON request bodies ---

    def json_list(self) -> list:
        data = self._read_json()
        if not isinstance(data, list):
            raise BadRequest("The request body must be a JSON array.")
        return data

    def json_map(self) -> dict:
        data = self._read_json()
        if not isinstance(data, dict):
            raise BadRequest("The request body must be a JSON object.")
        return data

    def json_maps(self) -> list:
        data = self._read_json()
        if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
            raise BadRequest("The request body must be a JSON array of objects.")
        return data

    def _check_json_content_type(self):
        content_type = self.request.headers.get("Content-Type")
        if content_type is None or "application/json" not in content_type.lower():
            raise ContentTypeError(content_type)

    def _read_json(self):
        self._check_json_content_type()
        try:
            return json.loads(self.request.get_data(as_text=True))
        except ValueError as e:
            raise BadRequest(f"The request body is not valid JSON: {e}") from e

    # --- responses ---

    def render_json(self, result, status=200) -> Response:
        if isinstance(result, BaseModel):
            result = result.model_dump(mode="json")

        response = Response(
            json.dumps(result),
            status=status,
            content_type="application/json; charset=utf-8",
        )
        response.headers["Cache-Control"] = "no-cache"
        return self._set_response(response)

    def merge_template(self, path, **context) -> str:
        """
        Renders a template to a string.

        path is relative to the app's template folder, e.g. /modulo/accion.html;
        the leading slash is optional.
        """
        try:
            return render_template(path.lstrip("/"), **context)
        except TemplateError as e:
            self.log_error(e)
            raise

    def render_template(self, path, **context) -> Response:
        html = self.merge_template(path, **context)
        return self._set_response(Response(html, mimetype="text/html"))

    def render_file(self, path, delete=False) -> Response:
        """Sends a file to the client, optionally deleting it once the response is closed."""
        return self._send(path, delete=delete)

    def render_file_download(self, path, download_name, delete=False) -> Response:
        return self._send(path, delete=delete, as_attachment=True, download_name=download_name)

    def _send(self, path, delete=False, **kwargs):
        self._check_not_rendered()
        # Relative paths are relative to the app root, as in send_file.
        path = os.path.join(current_app.root_path, path)
        response = send_file(path, **kwargs)
        if delete:
            # Runs on HEAD requests and aborted downloads too.
            response.call_on_close(lambda: os.remove(path))
        return self._set_response(response)

    def _check_not_rendered(self):
        if self.response is not None:
            raise ResponseAlreadyRenderedError("A response has already been rendered for this request.")

    def _set_response(self, response):
        self._check_not_rendered()
        self.response = response
        return response

    def log_error(self, e):
        current_app.logger.error(f"Error: {e}", exc_info=e)
