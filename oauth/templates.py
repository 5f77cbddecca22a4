"""HTML templates for the gateway pages.

Colors:
- Background: #FAF9F7 (warm cream)
- Primary: #D97756 (terracotta)
- Text: #1A1915 (dark charcoal)
- Secondary text: #6B6860
- Border: #E5E4E0

All values substituted into these templates must be HTML-escaped first.
"""

_STYLE = """
    <style>
        body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif;
               background: #FAF9F7;
               min-height: 100vh; display: flex; align-items: center; justify-content: center; margin: 0; }}
        .container {{ background: white; padding: 40px; border-radius: 16px; box-shadow: 0 4px 24px rgba(0,0,0,0.08);
                     width: 100%; max-width: 480px; border: 1px solid #E5E4E0; }}
        h1 {{ margin: 0 0 8px; color: #1A1915; font-size: 24px; font-weight: 600; }}
        p {{ color: #6B6860; margin: 0 0 12px; word-break: break-all; }}
        .status {{ background: #F5F5F0; color: #1A1915; padding: 12px; border-radius: 8px; margin: 20px 0; }}
        .error {{ background: #FEF2F2; color: #B91C1C; padding: 12px; border-radius: 8px; margin: 20px 0; border: 1px solid #FECACA; }}
        .links a {{ color: #D97756; text-decoration: none; font-weight: 500; margin-right: 16px; }}
        .links a:hover {{ text-decoration: underline; }}
    </style>
"""

# ============== Status Page ==============

INDEX_PAGE = """
<!DOCTYPE html>
<html>
<head>
    <title>Sign in</title>
""" + _STYLE + """
</head>
<body>
    <div class="container">
        <h1>Sign in</h1>
        <p>Authorization endpoint URI: {authorization_endpoint}</p>
        <p>Token URI: {token_endpoint}</p>
        <p>Scope: {scope}</p>
        <div class="status">
            <p>Signed in: {signed_in}</p>
            {signed_in_as}
        </div>
        <div class="links">
            <p><a href="/signin">Sign in</a></p>
            <p><a href="/signout">Sign out</a></p>
        </div>
    </div>
</body>
</html>
"""

SIGNED_IN_AS = "<p>Signed in as: {email}</p>"

# ============== Error Page ==============

ERROR_PAGE = """
<!DOCTYPE html>
<html>
<head>
    <title>{status_code} - Sign in</title>
""" + _STYLE + """
</head>
<body>
    <div class="container">
        <h1>{title}</h1>
        <div class="error">{message}</div>
        <div class="links">
            <p><a href="/">Home</a></p>
            <p><a href="/signin">Sign in again</a></p>
        </div>
    </div>
</body>
</html>
"""

ERROR_TITLES = {
    400: "Bad request",
    403: "Access denied",
    404: "Not found",
    500: "Sign-in failed",
}
