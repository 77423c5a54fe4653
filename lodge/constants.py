DEFAULT_ROLES = [
    ("MEMBER", "Lodge member with read access to the portal"),
    ("EDITOR", "Editor responsible for site content and records"),
    ("ADMIN", "Administrator with full access"),
]

# Higher number means more privileges
ROLE_PRIORITY = {
    "MEMBER": 10,
    "EDITOR": 50,
    "ADMIN": 100,
}

POSITION_TYPES = (
    "veneravel_mestre",
    "orador",
    "secretario",
    "chanceler",
    "tesoureiro",
    "mestre_banquete",
)

POSITION_LABELS = {
    "veneravel_mestre": "Venerável Mestre",
    "orador": "Orador",
    "secretario": "Secretário",
    "chanceler": "Chanceler",
    "tesoureiro": "Tesoureiro",
    "mestre_banquete": "Mestre de Banquete",
}

# Modules each officer may manage while their term is current. "*" grants everything.
POSITION_PERMISSIONS = {
    "veneravel_mestre": ["*"],
    "secretario": ["secretariat", "agenda", "library"],
    "chanceler": ["chancellor", "agenda"],
    "tesoureiro": ["financial"],
    "orador": ["reports"],
    "mestre_banquete": ["agenda", "events", "agape"],
}

POSITION_TERM_YEARS = 2

DEGREES = ("Aprendiz", "Companheiro", "Mestre")

TRANSACTION_TYPES = ("Receita", "Despesa")

CHARITY_CATEGORY = "Tronco de Beneficência"

DEFAULT_CATEGORIES = [
    ("Mensalidades", "Receita"),
    ("Doações", "Receita"),
    (CHARITY_CATEGORY, "Receita"),
    ("Utilidades", "Despesa"),
    ("Manutenção", "Despesa"),
    ("Ritualística", "Despesa"),
]

ATTENDANCE_STATUSES = ("Presente", "Ausente", "Justificado")
# Statuses that count towards a brother's frequency.
COUNTED_ATTENDANCE_STATUSES = ("Presente", "Justificado")

# Two events closer than this on the HHMM integer scale are flagged.
EVENT_CONFLICT_THRESHOLD = 200

MESSAGE_STATUSES = ("new", "read", "replied", "archived")

DEFAULT_SITE_SETTINGS = {
    "lodge_info": {"name": "Loja Maçônica", "number": None, "city": None},
    "contact": {"email": None, "phone": None, "address": None},
}

# Agape sessions move open -> closed -> finalized; only open sessions take consumptions.
AGAPE_SESSION_TRANSITIONS = {
    "open": "closed",
    "closed": "finalized",
}
