from urllib.parse import parse_qsl, urlsplit

WWWROOT = "https://moodle.example.org"
TOKEN = "0123456789abcdef"


def query_of(request):
    return dict(parse_qsl(urlsplit(request.url).query, keep_blank_values=True))


def form_of(request):
    body = request.body
    if isinstance(body, bytes):
        body = body.decode("utf-8")
    return dict(parse_qsl(body or "", keep_blank_values=True))
