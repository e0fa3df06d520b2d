from __future__ import annotations

import uuid
from typing import Callable

from django.conf import settings
from django.http import HttpRequest, HttpResponse

from .services import CLICK_COOKIE, REFERRAL_COOKIE, active_affiliate_for_code

CODE_MAX_AGE = 365 * 24 * 60 * 60
CLICK_MAX_AGE = 7 * 24 * 60 * 60


def set_referral_cookies(response: HttpResponse, code: str) -> HttpResponse:
    response.set_cookie(REFERRAL_COOKIE, code, max_age=CODE_MAX_AGE, httponly=False, samesite="Lax")
    response.set_cookie(CLICK_COOKIE, uuid.uuid4().hex, max_age=CLICK_MAX_AGE, httponly=False, samesite="Lax")
    return response


class ReferralCaptureMiddleware:
    """
    Remember the referring affiliate when a storefront link carries
    ``?aff=<code>``. Unknown or inactive codes are ignored.
    """

    def __init__(self, get_response: Callable[[HttpRequest], HttpResponse]) -> None:
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        response = self.get_response(request)
        param = getattr(settings, "AFFILIATE_REFERRAL_PARAM", "aff")
        code = (request.GET.get(param) or "").strip()
        if code and active_affiliate_for_code(code):
            set_referral_cookies(response, code)
        return response
