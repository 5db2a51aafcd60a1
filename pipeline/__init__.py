# Invitation pipeline package
# Modules:
#   config.py       — secrets resolution and pipeline constants
#   db.py           — Supabase connection and query helpers
#   auth.py         — session management and admin guard
#   errors.py       — user-facing exception taxonomy
#   models.py       — candidate, outcome and progress records
#   validation.py   — per-row validation rules
#   spreadsheet.py  — XLSX/XLS/CSV import and upload template
#   collector.py    — in-batch deduplication and validation pass
#   dispatch.py     — bulk-invite endpoint client
#   mailer.py       — invite email rendering and retrying sender
#   progress.py     — estimated progress for an in-flight batch
#   invite.py       — server-side bulk invite, listing, acceptance, resend
