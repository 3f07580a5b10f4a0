"""Authentication.

Learn: one credential for everything. Login issues a signed JWT and
stores it in an httpOnly cookie. The REST dependencies read that cookie
(or a Bearer header), and the realtime gateway reads the very same
cookie from the Socket.IO handshake — no second login step.
"""
