"""
Prompt templates for the recruiting assistant and email generation
"""
from typing import List, Optional

from interview_dispatch.models import DispatchOutcome, InvitationRecord


class PromptTemplates:
    """Manages prompt templates for the chat assistant and email content"""

    # Sentinel tokens the assistant may emit in plain text
    SEND_EMAIL = "SEND_EMAIL"
    SEND_REMINDER = "SEND_REMINDER"
    CHECK_STATUS = "CHECK_STATUS"

    SYSTEM_PROMPT = """Tu es un assistant IA pour gérer les convocations d'entretien dans un système ATS.

Tes fonctionnalités disponibles:
1. Envoyer un email de convocation d'entretien à un candidat
2. Envoyer un email de rappel/relance si le candidat n'a pas confirmé
3. Consulter le statut d'un candidat (envoyé, confirmé, décliné)

Réponds en français, sois professionnel et utile.

Quand l'utilisateur veut envoyer une convocation, tu dois collecter:
- L'email du candidat
- Le nom du candidat
- Le poste
- La date de l'entretien (JJ/MM/AAAA)
- L'heure de l'entretien (HH:MM)
- La durée de l'entretien (30 minutes par défaut)
- La modalité de l'entretien (visioconférence ou présentiel)

Quand tu as toutes les infos, récapitule-les et écris "SEND_EMAIL" dans ta réponse.
Pour relancer un candidat, écris "SEND_REMINDER:<email>".
Pour consulter le statut d'un candidat, écris "CHECK_STATUS:<email>".
N'écris jamais ces mots-clés dans un autre contexte."""

    # Structured alternative to the sentinel tokens
    TOOLS = [
        {
            "name": "send_invitation_email",
            "description": (
                "Envoie l'email de convocation une fois que l'email, le nom, le poste, "
                "la date et l'heure de l'entretien ont été collectés dans la conversation."
            ),
            "input_schema": {"type": "object", "properties": {}},
        },
        {
            "name": "send_reminder_email",
            "description": "Envoie un email de rappel à un candidat qui n'a pas encore confirmé.",
            "input_schema": {
                "type": "object",
                "properties": {"email": {"type": "string", "description": "Email du candidat"}},
                "required": ["email"],
            },
        },
        {
            "name": "check_candidate_status",
            "description": "Consulte le statut de la dernière convocation envoyée à un candidat.",
            "input_schema": {
                "type": "object",
                "properties": {"email": {"type": "string", "description": "Email du candidat"}},
                "required": ["email"],
            },
        },
    ]

    EMAIL_SYSTEM_PROMPT = "Tu es un assistant RH professionnel. Tu réponds uniquement en JSON."

    @staticmethod
    def build_system_prompt(context: Optional[str] = None) -> str:
        """Fixed instruction prompt with the optional context line appended"""
        if context:
            return f"{PromptTemplates.SYSTEM_PROMPT}\n\nContexte actuel: {context}"
        return PromptTemplates.SYSTEM_PROMPT

    @staticmethod
    def build_context_summary(outcomes: List[DispatchOutcome]) -> str:
        """
        Summarize recent dispatch outcomes for the assistant.

        Args:
            outcomes: Most recent outcomes, newest first

        Returns:
            One-line context summary
        """
        if not outcomes:
            return "Aucun candidat récent trouvé."
        entries = ", ".join(f"{o.candidate_name} ({o.status.value})" for o in outcomes)
        return f"Candidats récents: {entries}"

    @staticmethod
    def build_invitation_email_prompt(record: InvitationRecord) -> str:
        """
        Build the prompt asking for an invitation subject and body as JSON.

        Args:
            record: Invitation fields to embed

        Returns:
            Prompt string demanding a strict two-key JSON object
        """
        return f"""Génère un email de convocation à un entretien d'embauche en français.

Données:
- Nom candidat: {record.candidate_name}
- Poste: {record.post_title}
- Date: {record.interview_date}
- Heure: {record.interview_time}
- Durée: {record.interview_duration}
- Lieu/Lien: {record.interview_location}

Réponds UNIQUEMENT avec le JSON suivant (pas d'autre texte):
{{
  "subject": "Objet de l'email",
  "body": "Corps de l'email"
}}

L'email doit être professionnel, courtois et concis. N'ajoute pas de lien de confirmation, il est ajouté automatiquement."""
