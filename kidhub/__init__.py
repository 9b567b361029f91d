"""KidHub API.

FastAPI backend for the KidHub school/parenting platform, covering the
endpoints that accept input from outside the signed-in app:
- Paystack payment webhook (HMAC-SHA-512 signed, deduplicated by reference)
- GPS tracking pings authorized by short-lived session tokens
- Tracking session issuance and Paystack checkout for signed-in users

Records live in Cloud Firestore via the Firebase Admin SDK.
"""
