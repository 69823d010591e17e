from errors import BadRequest, NotFound


def test_default_message_when_none_given():
    exc = NotFound()
    assert (exc.status_code, exc.detail) == (404, "Not found")


def test_custom_message():
    exc = BadRequest("Prescription required")
    assert (exc.status_code, exc.detail) == (400, "Prescription required")
