"""
CLI utility to generate JWT tokens for testing the workflow bridge.

In production, tokens come from the application's identity provider. This
script mints development tokens with the claims the bridge reads: "sub" (the
identity id used for profile lookup) and an optional "name".

Usage examples:

    # Token for the CEO profile in profiles.example.json
    uv run python -m scripts.generate_token --sub user-ceo --name "Carla CEO"

    # Token with custom expiration (2 hours)
    uv run python -m scripts.generate_token --sub user-employee --exp-hours 2

    # Expired token (for testing rejection)
    uv run python -m scripts.generate_token --sub user-ceo --exp-hours -1

The generated token can be used with curl:

    curl http://localhost:8080/api/tools -H "Authorization: Bearer <token>"
"""

import argparse
import datetime

import jwt


def generate_token(
    subject: str,
    secret: str,
    name: str | None = None,
    algorithm: str = "HS256",
    exp_hours: float = 8.0,
) -> str:
    """
    Generate a signed JWT token for `subject`.

    Args:
        subject: The "sub" claim, the identity id of a profile record
        secret: The signing key (must match the server's BRIDGE_JWT_SECRET_KEY)
        name: Optional "name" claim, used as the username
        algorithm: JWT signing algorithm (default: HS256)
        exp_hours: Hours until expiration (negative = already expired)
    """
    now = datetime.datetime.now(datetime.timezone.utc)

    payload = {
        "sub": subject,
        "iat": now,
        "exp": now + datetime.timedelta(hours=exp_hours),
    }
    if name:
        payload["name"] = name

    return jwt.encode(payload, secret, algorithm=algorithm)


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Generate JWT tokens for the workflow bridge.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  CEO profile:
    %(prog)s --sub user-ceo --name "Carla CEO"

  Expired token (for testing):
    %(prog)s --sub user-ceo --exp-hours -1
        """,
    )

    parser.add_argument("--sub", required=True, help="Identity id (e.g., 'user-ceo')")
    parser.add_argument("--name", default=None, help="Optional display name claim")
    parser.add_argument(
        "--secret",
        default="dev-secret-change-me",
        help="JWT signing secret (must match server's BRIDGE_JWT_SECRET_KEY)",
    )
    parser.add_argument("--algorithm", default="HS256", help="JWT signing algorithm")
    parser.add_argument(
        "--exp-hours",
        type=float,
        default=8.0,
        help="Hours until token expires (negative = already expired, default: 8)",
    )

    args = parser.parse_args()

    token = generate_token(
        subject=args.sub,
        secret=args.secret,
        name=args.name,
        algorithm=args.algorithm,
        exp_hours=args.exp_hours,
    )

    print(f"Subject:    {args.sub}")
    print(f"Name:       {args.name or '-'}")
    print(f"Algorithm:  {args.algorithm}")
    print()
    print(f"Token: {token}")
    print()
    print("List your tools:")
    print(f'  curl http://localhost:8080/api/tools -H "Authorization: Bearer {token}"')


if __name__ == "__main__":
    main()
