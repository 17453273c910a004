"""Outcome dicts returned by the coordination services.

Expected rejections are ordinary return values. The HTTP layer maps the
``kind`` of a declined outcome onto a status code.
"""

REJECTED = 'rejected'
CONFLICT = 'conflict'
NOT_FOUND = 'not_found'
UNAVAILABLE = 'unavailable'

HTTP_STATUS = {
    REJECTED: 400,
    NOT_FOUND: 404,
    CONFLICT: 409,
    UNAVAILABLE: 503,
}

TRY_AGAIN = 'Temporary problem talking to the game store, please try again'


def accepted(**payload):
    payload['accepted'] = True
    return payload


def declined(kind, reason, **extra):
    extra.update({'accepted': False, 'kind': kind, 'reason': reason})
    return extra


def status_code(outcome):
    if outcome.get('accepted'):
        return 200
    return HTTP_STATUS.get(outcome.get('kind'), 400)
