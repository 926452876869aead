"""
Email templates for Habitz.

All templates use inline CSS for maximum email client compatibility.

Each template function returns (subject, html_body, text_body).
"""

from __future__ import annotations

from html import escape

BG_PAGE = "#F4F7F5"
BG_CARD = "#FFFFFF"
GREEN = "#22A06B"
TEXT_PRIMARY = "#1F2933"
TEXT_SECONDARY = "#616E7C"
BORDER = "#E4E7EB"


def _base_layout(content: str, app_name: str = "Habitz") -> str:
    """Wrap content in the base email layout."""
    return f"""\
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{app_name}</title>
</head>
<body style="margin: 0; padding: 0; background-color: {BG_PAGE}; font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;">
    <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="100%" style="background-color: {BG_PAGE};">
        <tr>
            <td align="center" style="padding: 40px 20px;">
                <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="600" style="max-width: 600px; width: 100%;">
                    <tr>
                        <td align="center" style="padding-bottom: 24px;">
                            <span style="font-size: 24px; font-weight: 700; color: {GREEN};">{app_name}</span>
                        </td>
                    </tr>
                    <tr>
                        <td style="background-color: {BG_CARD}; border: 1px solid {BORDER}; border-radius: 12px; padding: 32px;">
                            {content}
                        </td>
                    </tr>
                    <tr>
                        <td align="center" style="padding-top: 24px;">
                            <p style="color: {TEXT_SECONDARY}; font-size: 12px; line-height: 1.5; margin: 0;">
                                This email was sent by {app_name}.<br>
                                If you didn't expect this email, you can safely ignore it.
                            </p>
                        </td>
                    </tr>
                </table>
            </td>
        </tr>
    </table>
</body>
</html>"""


def _button(url: str, label: str) -> str:
    return (
        f'<a href="{escape(url, quote=True)}" style="display: inline-block; background-color: {GREEN}; '
        f'color: #FFFFFF; font-weight: 600; text-decoration: none; padding: 12px 24px; border-radius: 8px;">'
        f"{escape(label)}</a>"
    )


def friend_request(sender_name: str, confirm_url: str) -> tuple[str, str, str]:
    """Friend request email with a confirmation link."""
    subject = f"{sender_name} wants to be your friend on Habitz"
    content = f"""\
<h1 style="color: {TEXT_PRIMARY}; font-size: 20px; margin: 0 0 16px 0;">New friend request</h1>
<p style="color: {TEXT_SECONDARY}; font-size: 15px; line-height: 1.6; margin: 0 0 24px 0;">
    <strong style="color: {TEXT_PRIMARY};">{escape(sender_name)}</strong> sent you a friend request.
    Accept it to compare streaks and challenge each other.
</p>
{_button(confirm_url, "Accept request")}"""
    text = (
        f"{sender_name} sent you a friend request on Habitz.\n\n"
        f"Accept it here: {confirm_url}\n"
    )
    return subject, _base_layout(content), text


def challenge_invite(creator_name: str, title: str, challenge_url: str) -> tuple[str, str, str]:
    """Challenge invitation email."""
    subject = f"{creator_name} challenged you: {title}"
    content = f"""\
<h1 style="color: {TEXT_PRIMARY}; font-size: 20px; margin: 0 0 16px 0;">You've been challenged</h1>
<p style="color: {TEXT_SECONDARY}; font-size: 15px; line-height: 1.6; margin: 0 0 24px 0;">
    <strong style="color: {TEXT_PRIMARY};">{escape(creator_name)}</strong> invited you to
    <strong style="color: {TEXT_PRIMARY};">{escape(title)}</strong>.
</p>
{_button(challenge_url, "View challenge")}"""
    text = f"{creator_name} invited you to the challenge '{title}'.\n\nView it here: {challenge_url}\n"
    return subject, _base_layout(content), text
