"""
Email and confirmation page rendering
"""
import re
from datetime import datetime, timedelta
from html import escape
from typing import Optional
from urllib.parse import quote, urlencode

from interview_dispatch.models import DispatchOutcome, GeneratedEmail, InvitationRecord

DEFAULT_DURATION_MINUTES = 30

_PAGE_STYLE = "body { font-family: Arial, sans-serif; text-align: center; padding: 50px; }"


class EmailTemplates:
    """Builds email content, links and confirmation pages"""

    @staticmethod
    def build_confirmation_link(app_url: str, email: str, token: str) -> str:
        """One-shot confirmation link for a candidate"""
        return f"{app_url.rstrip('/')}/confirm?email={quote(email, safe='')}&token={quote(token, safe='')}"

    @staticmethod
    def parse_duration_minutes(duration: str) -> int:
        match = re.search(r"\d+", duration or "")
        return int(match.group(0)) if match else DEFAULT_DURATION_MINUTES

    @staticmethod
    def build_google_calendar_link(record: InvitationRecord) -> Optional[str]:
        """
        Build an "add to Google Calendar" link for the interview.

        Returns:
            The link, or None if date/time do not form a real datetime
        """
        try:
            start = datetime.strptime(f"{record.interview_date} {record.interview_time}", "%d/%m/%Y %H:%M")
        except ValueError:
            return None

        end = start + timedelta(minutes=EmailTemplates.parse_duration_minutes(record.interview_duration))
        params = {
            "action": "TEMPLATE",
            "text": f"Entretien - {record.post_title}",
            "dates": f"{start:%Y%m%dT%H%M%S}/{end:%Y%m%dT%H%M%S}",
            "details": record.interview_location,
        }
        return f"https://calendar.google.com/calendar/render?{urlencode(params)}"

    @staticmethod
    def build_fallback_email(record: InvitationRecord) -> GeneratedEmail:
        """
        Deterministic invitation content built from the record fields.

        Used whenever generated content is unavailable; cannot fail.
        """
        subject = f"Convocation à un entretien - {record.post_title}"
        body = (
            f"Bonjour {record.candidate_name},\n\n"
            f"Suite à votre candidature au poste de {record.post_title}, "
            f"nous avons le plaisir de vous convier à un entretien.\n\n"
            f"Date : {record.interview_date}\n"
            f"Heure : {record.interview_time}\n"
            f"Durée : {record.interview_duration}\n"
            f"Modalité : {record.interview_location}\n\n"
            f"Merci de confirmer votre présence en cliquant sur le lien ci-dessous.\n\n"
            f"Cordialement,\nL'équipe RH"
        )
        return GeneratedEmail(subject=subject, body=body, used_fallback=True)

    @staticmethod
    def render_invitation_html(
        record: InvitationRecord,
        body: str,
        confirmation_link: str,
        brand_name: str,
        calendar_link: Optional[str] = None
    ) -> str:
        """
        Render the branded invitation email.

        Args:
            record: Invitation fields shown in the details block
            body: Plain-text body (generated or fallback)
            confirmation_link: One-shot confirmation URL
            brand_name: Company name shown in header and footer
            calendar_link: Optional Google Calendar link

        Returns:
            HTML document
        """
        body_html = escape(body).replace("\n", "<br>")
        calendar_html = ""
        if calendar_link:
            calendar_html = f"""
              <p style="margin: 20px 0 0 0; font-size: 14px; text-align: center;">
                <a href="{escape(calendar_link)}" style="color: #667eea;">Ajouter à Google Agenda</a>
              </p>"""

        return f"""<!DOCTYPE html>
<html lang="fr">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
</head>
<body style="margin: 0; padding: 0; font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif; background-color: #f5f7fa;">
  <table role="presentation" style="width: 100%; border-collapse: collapse;">
    <tr>
      <td align="center" style="padding: 40px 0;">
        <table role="presentation" style="width: 600px; border-collapse: collapse; background-color: #ffffff; border-radius: 8px; overflow: hidden;">
          <tr>
            <td style="background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); padding: 40px 30px; text-align: center;">
              <h1 style="margin: 0; color: #ffffff; font-size: 28px; font-weight: 600;">Convocation à un entretien</h1>
            </td>
          </tr>
          <tr>
            <td style="padding: 40px 30px;">
              <p style="margin: 0 0 25px 0; font-size: 16px; line-height: 1.6; color: #333333;">{body_html}</p>
              <table role="presentation" style="width: 100%; border-collapse: collapse; background-color: #f3f4f6; border-radius: 8px; margin: 30px 0;">
                <tr>
                  <td style="padding: 25px;">
                    <h2 style="margin: 0 0 20px 0; color: #667eea; font-size: 18px;">Détails de l'entretien</h2>
                    <p style="margin: 0; font-size: 15px; line-height: 1.8; color: #555555;">
                      <strong>Poste :</strong> {escape(record.post_title)}<br>
                      <strong>Date :</strong> {escape(record.interview_date)}<br>
                      <strong>Heure :</strong> {escape(record.interview_time)}<br>
                      <strong>Durée :</strong> {escape(record.interview_duration)}<br>
                      <strong>Modalité :</strong> {escape(record.interview_location)}
                    </p>
                  </td>
                </tr>
              </table>
              <table role="presentation" style="width: 100%; border-collapse: collapse; margin: 30px 0;">
                <tr>
                  <td align="center">
                    <a href="{escape(confirmation_link)}"
                       style="display: inline-block; padding: 15px 40px; background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); color: #ffffff; text-decoration: none; border-radius: 6px; font-size: 16px; font-weight: 600;">
                      Confirmer ma présence
                    </a>
                  </td>
                </tr>
              </table>{calendar_html}
            </td>
          </tr>
          <tr>
            <td style="background-color: #f8f9fa; padding: 30px; text-align: center; border-top: 1px solid #e9ecef;">
              <p style="margin: 0; font-size: 12px; color: #999999;">Email envoyé par {escape(brand_name)}</p>
            </td>
          </tr>
        </table>
      </td>
    </tr>
  </table>
</body>
</html>"""

    @staticmethod
    def build_reminder_subject(post_title: str) -> str:
        return f"Rappel - Confirmation d'entretien pour {post_title}"

    @staticmethod
    def render_reminder_html(outcome: DispatchOutcome, confirmation_link: str, brand_name: str) -> str:
        """
        Render the reminder email from a stored outcome.

        Returns:
            HTML document
        """
        return f"""<!DOCTYPE html>
<html lang="fr">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
</head>
<body style="margin: 0; padding: 0; font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif; background-color: #f5f7fa;">
  <table role="presentation" style="width: 100%; border-collapse: collapse;">
    <tr>
      <td align="center" style="padding: 40px 0;">
        <table role="presentation" style="width: 600px; border-collapse: collapse; background-color: #ffffff; border-radius: 8px; overflow: hidden;">
          <tr>
            <td style="background: linear-gradient(135deg, #f59e0b 0%, #d97706 100%); padding: 40px 30px; text-align: center;">
              <h1 style="margin: 0; color: #ffffff; font-size: 28px; font-weight: 600;">Rappel - Confirmation d'entretien</h1>
            </td>
          </tr>
          <tr>
            <td style="padding: 40px 30px;">
              <p style="margin: 0 0 20px 0; font-size: 16px; line-height: 1.6; color: #333333;">
                Bonjour <strong>{escape(outcome.candidate_name)}</strong>,
              </p>
              <p style="margin: 0 0 25px 0; font-size: 16px; line-height: 1.6; color: #333333;">
                Nous n'avons pas encore reçu votre confirmation pour l'entretien concernant le poste de <strong>{escape(outcome.post_title)}</strong>.
              </p>
              <table role="presentation" style="width: 100%; border-collapse: collapse; background-color: #fff7ed; border-radius: 8px; margin: 30px 0;">
                <tr>
                  <td style="padding: 25px;">
                    <h2 style="margin: 0 0 20px 0; color: #f59e0b; font-size: 18px;">Rappel des détails</h2>
                    <p style="margin: 0; font-size: 15px; line-height: 1.8; color: #555555;">
                      <strong>Date :</strong> {escape(outcome.interview_date)}<br>
                      <strong>Heure :</strong> {escape(outcome.interview_time)}<br>
                      <strong>Durée :</strong> {escape(outcome.interview_duration)}<br>
                      <strong>Modalité :</strong> {escape(outcome.interview_location)}
                    </p>
                  </td>
                </tr>
              </table>
              <table role="presentation" style="width: 100%; border-collapse: collapse; margin: 30px 0;">
                <tr>
                  <td align="center">
                    <a href="{escape(confirmation_link)}"
                       style="display: inline-block; padding: 15px 40px; background: linear-gradient(135deg, #f59e0b 0%, #d97706 100%); color: #ffffff; text-decoration: none; border-radius: 6px; font-size: 16px; font-weight: 600;">
                      Confirmer maintenant
                    </a>
                  </td>
                </tr>
              </table>
              <p style="margin: 20px 0 0 0; font-size: 15px; line-height: 1.6; color: #666666;">
                Cordialement,<br>
                <strong style="color: #f59e0b;">L'équipe RH {escape(brand_name)}</strong>
              </p>
            </td>
          </tr>
          <tr>
            <td style="background-color: #f8f9fa; padding: 30px; text-align: center; border-top: 1px solid #e9ecef;">
              <p style="margin: 0; font-size: 12px; color: #999999;">Ceci est un rappel automatique envoyé par {escape(brand_name)}</p>
            </td>
          </tr>
        </table>
      </td>
    </tr>
  </table>
</body>
</html>"""

    @staticmethod
    def render_confirmation_success(outcome: DispatchOutcome) -> str:
        return f"""<!DOCTYPE html>
<html lang="fr">
<head>
  <meta charset="UTF-8">
  <title>Confirmation réussie</title>
  <style>
    {_PAGE_STYLE}
    .success {{ color: #059669; }}
    .details {{ background: #f3f4f6; padding: 20px; border-radius: 8px; max-width: 400px; margin: 20px auto; text-align: left; }}
  </style>
</head>
<body>
  <h1 class="success">✅ Confirmation réussie !</h1>
  <p>Merci {escape(outcome.candidate_name)} !</p>
  <p>Votre présence à l'entretien pour le poste de <strong>{escape(outcome.post_title)}</strong> est bien confirmée.</p>
  <div class="details">
    <p><strong>📅 Date :</strong> {escape(outcome.interview_date)}</p>
    <p><strong>🕐 Heure :</strong> {escape(outcome.interview_time)}</p>
  </div>
</body>
</html>"""

    @staticmethod
    def render_already_confirmed() -> str:
        return EmailTemplates._render_message_page(
            "Confirmation déjà effectuée",
            "⚠️ Confirmation déjà effectuée",
            "Vous avez déjà confirmé votre présence à cet entretien.",
            "#f59e0b"
        )

    @staticmethod
    def render_invalid_link() -> str:
        return EmailTemplates._render_message_page(
            "Erreur de confirmation",
            "❌ Lien de confirmation invalide",
            "Le lien de confirmation est invalide ou a expiré.",
            "#dc2626"
        )

    @staticmethod
    def render_confirmation_error() -> str:
        return EmailTemplates._render_message_page(
            "Erreur",
            "❌ Erreur",
            "Une erreur est survenue lors de la confirmation. Veuillez réessayer.",
            "#dc2626"
        )

    @staticmethod
    def _render_message_page(title: str, heading: str, message: str, color: str) -> str:
        return f"""<!DOCTYPE html>
<html lang="fr">
<head>
  <meta charset="UTF-8">
  <title>{title}</title>
  <style>
    {_PAGE_STYLE}
    h1 {{ color: {color}; }}
  </style>
</head>
<body>
  <h1>{heading}</h1>
  <p>{message}</p>
</body>
</html>"""
