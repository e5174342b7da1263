"""Challenge page rendering."""
from __future__ import annotations

from jinja2 import Environment, select_autoescape

from contract import FAILURE_MESSAGE, NONCE_FIELD, SECRET_FIELD
from models import Challenge

_env = Environment(autoescape=select_autoescape(default=True, default_for_string=True))

CHALLENGE_TEMPLATE = _env.from_string("""\
<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="robots" content="noindex">
<title>Password Required</title>
<style>
body { font-family: sans-serif; background: #f5f5f5; }
.gate { max-width: 500px; margin: 60px auto; padding: 40px; background: #fff;
        border-radius: 8px; box-shadow: 0 2px 10px rgba(0,0,0,.1); text-align: center; }
.gate form { display: flex; flex-direction: column; gap: 15px; }
.gate input[type=password] { padding: 12px 16px; font-size: 16px; border: 1px solid #ddd; border-radius: 4px; }
.gate button { padding: 12px 24px; font-size: 16px; background: #0073aa; color: #fff; border: none; border-radius: 4px; }
.gate .error-message { color: #dc3545; background: #ffe6e6; padding: 10px 15px; border-radius: 4px; }
.gate .notice-text { font-size: 13px; color: #999; margin-top: 20px; }
</style>
</head>
<body>
<div class="gate">
  <h2>Password Required</h2>
  <p>This checkout page is password protected. Please enter the password to continue.</p>
  {% if error %}<div class="error-message" role="alert">{{ error }}</div>{% endif %}
  <form method="post" action="{{ action }}">
    <input type="hidden" name="{{ nonce_field }}" value="{{ nonce }}">
    <input type="password" name="{{ secret_field }}" placeholder="Enter password"
           required autocomplete="off" autofocus>
    <button type="submit">Submit</button>
  </form>
  <p class="notice-text">This is a development/staging environment.
  If you reached this page by mistake, please visit the main website.</p>
</div>
</body>
</html>
""")


def render_challenge(challenge: Challenge, action: str) -> str:
    return CHALLENGE_TEMPLATE.render(
        action=action,
        nonce=challenge.nonce,
        nonce_field=NONCE_FIELD,
        secret_field=SECRET_FIELD,
        error=FAILURE_MESSAGE if challenge.failed else "",
    )
