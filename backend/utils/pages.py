# backend/utils/pages.py
from html import escape

COLORS = {
    "primary": "#2A9D8F",
    "secondary": "#5C4033",
    "tertiary": "#FBF8F3",
    "tertiary_medium": "#E8E4DC",
    "accent": "#E9B44C",
    "text_light": "#5D6B6A",
    "error": "#DC3545",
}

SUCCESS_ICON = (
    '<svg width="64" height="64" viewBox="0 0 24 24" fill="none" stroke="{color}" stroke-width="2" '
    'stroke-linecap="round" stroke-linejoin="round">'
    '<path d="M22 11.08V12a10 10 0 1 1-5.93-9.14"></path>'
    '<polyline points="22 4 12 14.01 9 11.01"></polyline></svg>'
)

ERROR_ICON = (
    '<svg width="64" height="64" viewBox="0 0 24 24" fill="none" stroke="{color}" stroke-width="2" '
    'stroke-linecap="round" stroke-linejoin="round">'
    '<circle cx="12" cy="12" r="10"></circle>'
    '<line x1="15" y1="9" x2="9" y2="15"></line>'
    '<line x1="9" y1="9" x2="15" y2="15"></line></svg>'
)


# Standalone confirmation page shown after following an unsubscribe link
def render_unsubscribe_page(success: bool, title: str, message: str, site_url: str) -> str:
    icon = SUCCESS_ICON.format(color=COLORS["primary"]) if success else ERROR_ICON.format(color=COLORS["error"])
    c = COLORS
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{escape(title)} - The Cookie Isle</title>
  <style>
    * {{ margin: 0; padding: 0; box-sizing: border-box; }}
    body {{
      font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
      background: linear-gradient(135deg, {c["tertiary"]} 0%, {c["tertiary_medium"]} 100%);
      min-height: 100vh; display: flex; align-items: center; justify-content: center; padding: 20px;
    }}
    .container {{
      background: white; border-radius: 16px; box-shadow: 0 4px 24px rgba(0,0,0,0.1);
      max-width: 480px; width: 100%; padding: 48px 32px; text-align: center;
    }}
    .icon {{ margin-bottom: 24px; }}
    h1 {{ color: {c["secondary"]}; font-size: 24px; margin-bottom: 16px; }}
    p {{ color: {c["text_light"]}; font-size: 16px; line-height: 1.6; margin-bottom: 24px; }}
    .button {{
      display: inline-block; background: {c["accent"]}; color: {c["secondary"]}; text-decoration: none;
      font-weight: bold; padding: 14px 32px; border-radius: 30px; font-size: 16px;
    }}
    .footer {{
      margin-top: 32px; padding-top: 24px; border-top: 1px solid {c["tertiary_medium"]};
      color: {c["text_light"]}; font-size: 14px;
    }}
  </style>
</head>
<body>
  <div class="container">
    <div class="icon">{icon}</div>
    <h1>{escape(title)}</h1>
    <p>{escape(message)}</p>
    <a href="{escape(site_url, quote=True)}" class="button">Visit Our Website</a>
    <div class="footer">
      <p>The Cookie Isle &bull; Fresh Baked Happiness</p>
    </div>
  </div>
</body>
</html>"""
