# send_test_email.py
#
# Usage: python send_test_email.py you@example.com [template]
# template: welcome (default) | payment-receipt | password-reset

import sys

from bizmodel.core.logging import configure_logging
from bizmodel.services.email_service import EmailService

SAMPLE_DATA = {
    "name": "Test User",
    "amount_cents": 999,
    "currency": "usd",
    "purpose": "report-unlock",
    "payment_id": 0,
    "token": "test-token",
}


def main():
    if len(sys.argv) < 2:
        print("Usage: python send_test_email.py RECIPIENT [template]")
        sys.exit(2)

    configure_logging("INFO")
    recipient = sys.argv[1]
    template = sys.argv[2] if len(sys.argv) > 2 else "welcome"

    print(f"Sending {template} test email to {recipient}...")
    if EmailService().send(template, recipient, SAMPLE_DATA):
        print("Email sent! Check your inbox.")
    else:
        print("Send failed, see log output above.")
        sys.exit(1)


if __name__ == "__main__":
    main()
