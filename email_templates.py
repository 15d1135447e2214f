"""HTML bodies for the emails sent to tenants during and after provisioning."""

from html import escape
from typing import Dict, List

CELL_STYLE = "padding:8px 12px;border:1px solid #e2e8f0;font-family:monospace;font-size:14px;"
HEAD_STYLE = "padding:8px 12px;border:1px solid #e2e8f0;text-align:left;font-size:13px;color:#64748b;"
CARD_STYLE = "background:#fff;border-radius:12px;padding:30px;box-shadow:0 1px 3px rgba(0,0,0,0.1);"
BODY_STYLE = "margin:0;padding:0;font-family:-apple-system,BlinkMacSystemFont,'Segoe UI',Roboto,sans-serif;background:#f8fafc;"


def dns_table_rows(dns_records: List[Dict[str, str]]) -> str:
    """One <tr> per DNS record, in the order given."""
    rows = []
    for record in dns_records:
        rows.append(
            "<tr>"
            f'<td style="{CELL_STYLE}">{escape(record["type"])}</td>'
            f'<td style="{CELL_STYLE}">{escape(record["name"])}</td>'
            f'<td style="{CELL_STYLE}">{escape(record["value"])}</td>'
            "</tr>"
        )
    return "".join(rows)


def dns_setup_subject(domain: str) -> str:
    return f"Your new site is almost live - DNS setup for {domain}"


def render_dns_setup_email(
    display_name: str,
    domain: str,
    fly_url: str,
    verify_url: str,
    dns_records: List[Dict[str, str]],
) -> str:
    return f"""<!DOCTYPE html>
<html>
  <head><meta charset="utf-8"><title>DNS Setup Required</title></head>
  <body style="{BODY_STYLE}">
    <div style="max-width:600px;margin:0 auto;padding:40px 20px;">
      <div style="text-align:center;margin-bottom:30px;">
        <h1 style="color:#1e293b;font-size:24px;margin:0 0 8px;">Your new site is almost live!</h1>
        <p style="color:#64748b;font-size:16px;margin:0;">{escape(display_name)} &middot; {escape(domain)}</p>
      </div>

      <div style="{CARD_STYLE}margin-bottom:20px;">
        <h2 style="color:#1e293b;font-size:18px;margin:0 0 12px;">Your site is live now at:</h2>
        <p style="margin:0 0 20px;">
          <a href="{escape(fly_url)}" style="color:#3b82f6;font-size:16px;">{escape(fly_url)}</a>
        </p>

        <h2 style="color:#1e293b;font-size:18px;margin:0 0 12px;">To use your custom domain ({escape(domain)}):</h2>
        <p style="color:#475569;font-size:14px;margin:0 0 16px;">Add these DNS records at your domain registrar:</p>

        <table style="width:100%;border-collapse:collapse;margin-bottom:20px;">
          <thead>
            <tr style="background:#f1f5f9;">
              <th style="{HEAD_STYLE}">Type</th>
              <th style="{HEAD_STYLE}">Name</th>
              <th style="{HEAD_STYLE}">Value</th>
            </tr>
          </thead>
          <tbody>{dns_table_rows(dns_records)}</tbody>
        </table>

        <p style="color:#475569;font-size:14px;margin:0 0 8px;">DNS changes can take a few minutes to propagate.</p>
      </div>

      <div style="{CARD_STYLE}">
        <h2 style="color:#1e293b;font-size:18px;margin:0 0 12px;">Once you've added the DNS records:</h2>
        <p style="color:#475569;font-size:14px;margin:0 0 16px;">Click the button below to verify your domain and activate HTTPS:</p>
        <a href="{escape(verify_url)}" style="display:inline-block;padding:12px 24px;background:#3b82f6;color:#fff;text-decoration:none;border-radius:8px;font-size:14px;font-weight:600;">Verify Domain</a>
      </div>

      <div style="margin-top:30px;text-align:center;color:#94a3b8;font-size:12px;">
        <p style="margin:0;">Provisioned by Doubleclicker</p>
      </div>
    </div>
  </body>
</html>
"""


def render_site_live_email(live_url: str) -> str:
    return f"""<!DOCTYPE html>
<html>
  <head><meta charset="utf-8"></head>
  <body style="{BODY_STYLE}">
    <div style="max-width:600px;margin:0 auto;padding:40px 20px;text-align:center;">
      <h1 style="color:#1e293b;font-size:28px;margin:0 0 16px;">Your site is live!</h1>
      <p style="color:#475569;font-size:16px;margin:0 0 24px;">DNS is configured and HTTPS is active.</p>
      <a href="{escape(live_url)}" style="display:inline-block;padding:14px 32px;background:#3b82f6;color:#fff;text-decoration:none;border-radius:8px;font-size:16px;font-weight:600;">{escape(live_url)}</a>
      <p style="color:#94a3b8;font-size:13px;margin-top:30px;">Content from Doubleclicker will appear on your blog automatically as it's published.</p>
    </div>
  </body>
</html>
"""
