"""Crowd.live DOM selectors.

Update these when the platform's markup changes.
"""

# Registration form
NICKNAME_INPUT = 'input[placeholder*="Nickname"], input[name*="nickname"]'
NAME_INPUT = 'input[placeholder*="Name"]:not([placeholder*="Nickname"])'
EMAIL_INPUT = 'input[placeholder*="Email"], input[type="email"]'
PHONE_INPUT = 'input[type="tel"]'

JOIN_BUTTONS = (
    'button:has-text("Join")',
    "text=Join",
    'button:has-text("JOIN")',
    '[role="button"]:has-text("Join")',
)

CONTINUE_BUTTONS = (
    'button:has-text("Continue Playing")',
    'button:has-text("Continue")',
    'button:has-text("Play")',
    "text=Continue Playing",
    "text=Continue",
)

# Answer controls
LETTER_BUTTONS = 'button:has-text("A."), button:has-text("B."), button:has-text("C."), button:has-text("D.")'
GRIP_BUTTONS = 'button[name*="Grip Icon"]'
TRUE_FALSE_BUTTONS = 'button:has-text("True"), button:has-text("False")'
NUMBER_INPUT = (
    'input[type="number"], input[type="tel"], input[inputmode="numeric"], '
    'input[placeholder*="number"], input[placeholder*="answer"]'
)
TEXT_INPUT = 'input[type="text"]:not([readonly]), textarea'
IMAGE_BUTTONS = 'button img, button [class*="image"]'
IMAGE_BUTTON_PARENTS = "button:has(img)"
CLICKABLE_AREAS = '[class*="answer"], [class*="option"], [class*="choice"]'
CLICKABLE_FALLBACK = '[class*="answer"], [class*="option"], [class*="choice"], [role="button"]'
SUBMIT_BUTTONS = (
    'button[type="submit"], button:has-text("Submit"), '
    'button:has-text("OK"), button:has-text("Confirm")'
)
DRAGGABLE_ITEMS = (
    GRIP_BUTTONS,
    '[draggable="true"]',
    '[class*="draggable"]',
    '[class*="sortable"]',
)

# Buttons that are never answers
NAV_BUTTON_WORDS = ("sign out", "profile", "privacy", "close", "mute", "menu", "policy")

# Question and score
QUESTION_TEXT = 'h1, h2, h3, [class*="question"] p, section p'
CURRENT_SCORE = 'text=/\\d+ Point/i, [class*="score"], [class*="points"]'

# Feedback after answering
CORRECT_MARKERS = ("correct", "right answer", "you got it", "nice!", "great job")
WRONG_MARKERS = ("wrong", "incorrect", "time has run out", "too slow", "not quite")
CORRECT_ELEMENTS = '[class*="correct"], [class*="green"], [class*="success"]'
WRONG_ELEMENTS = '[class*="incorrect"], [class*="wrong"], [class*="red"], [class*="error"]'

# Local subscriber number length by dial code
COUNTRY_PHONE_LENGTHS: dict[str, int] = {
    "1": 10, "7": 10, "20": 10, "27": 9, "30": 10, "31": 9, "32": 9, "33": 9,
    "34": 9, "36": 9, "39": 10, "40": 10, "41": 9, "43": 10, "44": 10, "45": 8,
    "46": 9, "47": 8, "48": 9, "49": 10, "51": 9, "52": 10, "53": 8, "54": 10,
    "55": 11, "56": 9, "57": 10, "58": 10, "60": 9, "61": 9, "62": 10, "63": 10,
    "64": 9, "65": 8, "66": 9, "81": 10, "82": 10, "84": 9, "86": 11, "90": 10,
    "91": 10, "92": 10, "93": 9, "94": 9, "95": 9, "98": 10, "212": 9, "213": 9,
    "216": 8, "218": 9, "220": 7, "234": 10, "254": 9, "255": 9, "256": 9,
    "260": 9, "263": 9, "351": 9, "352": 9, "353": 9, "354": 7, "358": 9,
    "370": 8, "371": 8, "372": 8, "380": 9, "381": 9, "385": 9, "386": 8,
    "420": 9, "421": 9, "852": 8, "853": 8, "855": 9, "856": 10, "880": 10,
    "886": 9, "960": 7, "961": 8, "962": 9, "963": 9, "964": 10, "965": 8,
    "966": 9, "967": 9, "968": 8, "970": 9, "971": 9, "972": 9, "973": 8,
    "974": 8, "975": 8, "976": 8, "977": 10, "992": 9, "993": 8, "994": 9,
    "995": 9, "996": 9, "998": 9,
}
DEFAULT_PHONE_LENGTH = 9
DEFAULT_DIAL_CODE = "49"


def country_phone_length(code: str) -> int:
    """Expected local digit count for a dial code (with or without "+")."""
    return COUNTRY_PHONE_LENGTHS.get(code.lstrip("+"), DEFAULT_PHONE_LENGTH)


def split_phone(phone: str) -> tuple[str, str]:
    """Split a phone number into (dial code, local digits).

    Only numbers written with a leading "+" carry a dial code; longer codes
    are tried first.
    """
    digits = "".join(ch for ch in phone if ch.isdigit())
    if phone.startswith("+"):
        for length in (3, 2, 1):
            code = digits[:length]
            if code in COUNTRY_PHONE_LENGTHS:
                return code, digits[length:]
    return DEFAULT_DIAL_CODE, digits
