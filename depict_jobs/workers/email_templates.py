"""HTML mail templates, one per email job category."""

from datetime import datetime, timezone
from html import escape
from typing import Callable, NamedTuple

STYLE = """
    body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; }
    .container { max-width: 600px; margin: 0 auto; padding: 20px; }
    .header { background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); color: white; padding: 30px; text-align: center; border-radius: 10px 10px 0 0; }
    .content { background: #f9f9f9; padding: 30px; border-radius: 0 0 10px 10px; }
    .feature { margin: 15px 0; padding: 15px; background: white; border-left: 4px solid #667eea; border-radius: 5px; }
    .button { display: inline-block; padding: 12px 30px; background: #667eea; color: white; text-decoration: none; border-radius: 5px; margin: 20px 0; }
    .warning { background: #fff3cd; border-left: 4px solid #ffc107; padding: 15px; margin: 20px 0; border-radius: 5px; }
    .footer { text-align: center; margin-top: 30px; color: #666; font-size: 12px; }
"""


class RenderedEmail(NamedTuple):
    subject: str
    html: str


def _layout(header: str, body: str) -> str:
    year = datetime.now(timezone.utc).year
    return f"""<!DOCTYPE html>
<html>
  <head><style>{STYLE}</style></head>
  <body>
    <div class="container">
      <div class="header">{header}</div>
      <div class="content">{body}</div>
      <div class="footer">
        <p>&copy; {year} Carbon Depict. All rights reserved.</p>
        <p>Empowering organizations to track, report, and reduce their carbon footprint.</p>
      </div>
    </div>
  </body>
</html>
"""


def _link_block(url: str, label: str) -> str:
    return f"""
        <p style="text-align: center;"><a href="{url}" class="button">{label}</a></p>
        <p>Or copy and paste this link into your browser:</p>
        <p style="word-break: break-all; color: #667eea;">{url}</p>
    """


def verification(data: dict, client_url: str) -> RenderedEmail:
    url = f"{client_url}/verify-email?token={escape(data['token'])}"
    body = f"""
        <p>Hi {escape(data['first_name'])},</p>
        <p>Thank you for registering with Carbon Depict! Please verify your email address to activate your account.</p>
        {_link_block(url, "Verify Email Address")}
        <p><strong>This link will expire in 24 hours.</strong></p>
        <p>If you didn't create an account with Carbon Depict, you can safely ignore this email.</p>
    """
    return RenderedEmail(
        subject="Verify your Carbon Depict account",
        html=_layout("<h1>Carbon Depict</h1><p>Verify Your Account</p>", body),
    )


def welcome(data: dict, client_url: str) -> RenderedEmail:
    body = f"""
        <p>Hi {escape(data['first_name'])},</p>
        <p>Welcome to <strong>{escape(data['company_name'])}</strong>'s Carbon Depict account!
        We're excited to help you on your sustainability journey.</p>
        <h3>Get Started:</h3>
        <div class="feature"><strong>Track Emissions</strong><br>Monitor Scope 1, 2, and 3 emissions across your organization</div>
        <div class="feature"><strong>Generate Reports</strong><br>Create comprehensive ESG reports compliant with GRI, SASB, and TCFD</div>
        <div class="feature"><strong>AI Insights</strong><br>Leverage AI-powered predictions and recommendations</div>
        <div class="feature"><strong>Set Targets</strong><br>Define and track progress towards your net-zero goals</div>
        <p style="text-align: center;"><a href="{client_url}/dashboard" class="button">Go to Dashboard</a></p>
        <p>Need help getting started? Check out our <a href="{client_url}/docs">documentation</a> or contact our support team.</p>
    """
    return RenderedEmail(
        subject="Welcome to Carbon Depict",
        html=_layout("<h1>Welcome to Carbon Depict!</h1>", body),
    )


def password_reset(data: dict, client_url: str) -> RenderedEmail:
    url = f"{client_url}/reset-password?token={escape(data['token'])}"
    body = f"""
        <p>Hi {escape(data['first_name'])},</p>
        <p>We received a request to reset your Carbon Depict password.</p>
        {_link_block(url, "Reset Password")}
        <div class="warning">
          <strong>Security Notice:</strong><br>
          This link will expire in 1 hour. If you didn't request a password reset,
          please ignore this email and your password will remain unchanged.
        </div>
    """
    return RenderedEmail(
        subject="Reset your Carbon Depict password",
        html=_layout("<h1>Password Reset</h1>", body),
    )


TEMPLATES: dict[str, Callable[[dict, str], RenderedEmail]] = {
    "verification": verification,
    "welcome": welcome,
    "password_reset": password_reset,
}
