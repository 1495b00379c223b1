"""
Module: sender_type_data
Purpose: Domain, prefix, header and content patterns for sender-type detection.
Dependencies: None (pure data, re only)

Separates detection policy from detection logic. Edit this file (or
sender_rules.yaml for additional domains) without touching sender_type.py.
"""

import re

# ---------------------------------------------------------------------------
# Known broadcast platforms -> broadcast subtype
# Matched on the exact sender domain
# ---------------------------------------------------------------------------

BROADCAST_DOMAINS: dict[str, str] = {
    # Newsletter platforms (individual creators)
    "substack.com": "newsletter_author",
    "substackmail.com": "newsletter_author",
    "beehiiv.com": "newsletter_author",
    "buttondown.email": "newsletter_author",
    "convertkit.com": "newsletter_author",
    "convertkit-mail.com": "newsletter_author",
    "revue.co": "newsletter_author",
    "ghost.io": "newsletter_author",
    # Marketing platforms
    "mailchimp.com": "company_newsletter",
    "mail.mailchimp.com": "company_newsletter",
    "sendgrid.net": "company_newsletter",
    "mailgun.org": "company_newsletter",
    "constantcontact.com": "company_newsletter",
    "hubspot.com": "company_newsletter",
    "hubspotemail.net": "company_newsletter",
    "klaviyo.com": "company_newsletter",
    # Social / digest services
    "linkedin.com": "digest_service",
    "facebookmail.com": "digest_service",
    "twitter.com": "digest_service",
    "x.com": "digest_service",
    "github.com": "digest_service",
    "medium.com": "digest_service",
    "reddit.com": "digest_service",
    "quora.com": "digest_service",
    # Transactional senders
    "notifications.google.com": "transactional",
    "googlemail.com": "transactional",
    "amazonses.com": "transactional",
    "postmarkapp.com": "transactional",
    "mandrillapp.com": "transactional",
}

# ---------------------------------------------------------------------------
# Local-part prefixes -> broadcast subtype
# Matches "prefix", "prefix.x", "prefix-x" and "prefix_x"
# ---------------------------------------------------------------------------

BROADCAST_PREFIXES: dict[str, str] = {
    # Transactional
    "noreply": "transactional",
    "no-reply": "transactional",
    "donotreply": "transactional",
    "do-not-reply": "transactional",
    "notifications": "transactional",
    "notification": "transactional",
    "alerts": "transactional",
    "alert": "transactional",
    "mailer-daemon": "transactional",
    "postmaster": "transactional",
    "bounce": "transactional",
    "auto": "transactional",
    "automated": "transactional",
    # Newsletters
    "newsletter": "company_newsletter",
    "newsletters": "company_newsletter",
    "news": "company_newsletter",
    "digest": "digest_service",
    "weekly": "company_newsletter",
    "daily": "company_newsletter",
    "monthly": "company_newsletter",
    "updates": "company_newsletter",
    "update": "company_newsletter",
    "announce": "company_newsletter",
    "announcements": "company_newsletter",
    "bulletin": "company_newsletter",
    # Marketing
    "marketing": "company_newsletter",
    "promo": "company_newsletter",
    "promotions": "company_newsletter",
    "offers": "company_newsletter",
    "deals": "company_newsletter",
    "sales": "company_newsletter",
}

# ---------------------------------------------------------------------------
# Email service provider markers in Received / X-Mailer / Message-Id
# ---------------------------------------------------------------------------

ESP_HEADER_PATTERNS: tuple[str, ...] = (
    "mailchimp",
    "sendgrid",
    "mailgun",
    "mandrill",
    "postmark",
    "amazonses",
    "ses.amazonaws",
    "constantcontact",
    "hubspot",
    "klaviyo",
    "convertkit",
    "substack",
    "beehiiv",
    "buttondown",
    "campaignmonitor",
    "getresponse",
    "activecampaign",
    "drip",
    "moosend",
    "sendinblue",
    "brevo",
)

# ---------------------------------------------------------------------------
# Content patterns (subject + body)
# Two or more broadcast or cold-outreach hits are needed; one opportunity
# hit is enough.
# ---------------------------------------------------------------------------

BROADCAST_CONTENT_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        # View in browser
        r"view\s+(this\s+)?in\s+(your\s+)?browser",
        r"view\s+(this\s+)?(email\s+)?online",
        r"having\s+trouble\s+viewing",
        r"can'?t\s+see\s+this\s+email",
        r"email\s+not\s+displaying",
        # Subscription management
        r"unsubscribe",
        r"manage\s+(your\s+)?preferences",
        r"update\s+(your\s+)?preferences",
        r"email\s+preferences",
        r"opt[\s-]?out",
        r"stop\s+receiving",
        # List language and merge tags
        r"you('re|\s+are)\s+receiving\s+this",
        r"you\s+signed\s+up",
        r"you\s+subscribed",
        r"this\s+email\s+was\s+sent\s+to",
        r"sent\s+to\s+\{\{",
        r"\{\{email\}\}",
        r"\{\{first_?name\}\}",
        # Footers
        r"copyright\s+\d{4}",
        r"all\s+rights\s+reserved",
        r"privacy\s+policy",
    )
)

COLD_OUTREACH_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        # Meeting asks
        r"i('d)?\s+(like|love|want)\s+to\s+(schedule|book|set\s+up)\s+a\s+(call|meeting|demo)",
        r"let'?s?\s+(schedule|book|set\s+up)\s+a\s+(quick\s+)?(call|chat|meeting)",
        r"do\s+you\s+have\s+(15|20|30)\s+minutes",
        r"quick\s+question",
        r"reaching\s+out\s+because",
        r"saw\s+(your|that\s+you)",
        r"i\s+came\s+across",
        r"i\s+noticed",
        # Recruiting
        r"exciting\s+opportunity",
        r"perfect\s+(fit|candidate|match)",
        r"your\s+(background|experience|profile)",
        r"i('m)?\s+a\s+recruiter",
        r"talent\s+(acquisition|team)",
        r"hiring\s+(manager|team)",
        # Partnerships
        r"partnership\s+opportunity",
        r"collaboration\s+opportunity",
        r"would\s+you\s+be\s+interested\s+in",
        r"thought\s+you('d)?\s+be\s+interested",
        r"guest\s+post",
        r"link\s+exchange",
    )
)

OPPORTUNITY_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\bharo\b",
        r"help\s+a\s+reporter",
        r"journalist\s+(query|request)",
        r"media\s+query",
        r"looking\s+for\s+(sources|experts)",
        r"deadline:",
        r"requirements:",
        r"submit\s+your",
        r"call\s+for\s+(entries|submissions|proposals)",
        r"\brfp\b",
        r"request\s+for\s+proposal",
    )
)
