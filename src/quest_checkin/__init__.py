"""Quest check-in package.

Admins open time-boxed QR check-in sessions for a chosen group of users.
Scanning the session code inside its window awards EXP; members of the
group who never scanned lose EXP once the window closes. Each feature
(profiles, sessions, checkin, penalties) has its own service, repository
and thin Flask controller module.
"""
