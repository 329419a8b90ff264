"""Launch a TLS-enabled PostgreSQL Docker container and write a matching .env for csrdb."""

from __future__ import annotations

import argparse
import datetime as dt
import ipaddress
import subprocess
import sys
import time
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

ROOT = Path(__file__).resolve().parents[1]

DEFAULT_CONTAINER = "csrdb-sample-db"
DEFAULT_PORT = 5543
DEFAULT_PASSWORD = "csrdb"
DEFAULT_DB = "csrdb_demo"
DEFAULT_USER = "csrdb"
DEFAULT_SCHEMA = "support"
DOCKER_IMAGE = "postgres:16-alpine"

CERT_DIR = ROOT / "certs"
ENV_FILE = ROOT / ".env"

# The image refuses keys it does not own, so copy them before handing over to the entrypoint.
_ENTRYPOINT = (
    "cp /certs/server.crt /certs/server.key /var/lib/postgresql/ "
    "&& chown postgres:postgres /var/lib/postgresql/server.* "
    "&& chmod 600 /var/lib/postgresql/server.key "
    "&& exec docker-entrypoint.sh postgres -c ssl=on "
    "-c ssl_cert_file=/var/lib/postgresql/server.crt "
    "-c ssl_key_file=/var/lib/postgresql/server.key"
)


def run(cmd: list[str], *, check: bool = True, **kwargs) -> subprocess.CompletedProcess[str]:
    print("$", " ".join(cmd))
    return subprocess.run(cmd, check=check, text=True, **kwargs)


def container_exists(name: str) -> bool:
    result = subprocess.run(
        ["docker", "ps", "-a", "--filter", f"name={name}", "--format", "{{.ID}}"],
        text=True,
        capture_output=True,
    )
    return bool(result.stdout.strip())


def write_server_certificate(directory: Path) -> Path:
    """Create a self-signed certificate for localhost; returns the PEM path."""

    directory.mkdir(parents=True, exist_ok=True)
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "localhost")])
    now = dt.datetime.now(dt.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - dt.timedelta(minutes=5))
        .not_valid_after(now + dt.timedelta(days=365))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(
            x509.SubjectAlternativeName(
                [x509.DNSName("localhost"), x509.IPAddress(ipaddress.ip_address("127.0.0.1"))]
            ),
            critical=False,
        )
        .sign(key, hashes.SHA256())
    )
    (directory / "server.crt").write_bytes(cert.public_bytes(serialization.Encoding.PEM))
    (directory / "server.key").write_bytes(
        key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.TraditionalOpenSSL,
            serialization.NoEncryption(),
        )
    )
    return directory / "server.crt"


def start_container(name: str, port: int, password: str, database: str, user: str) -> None:
    if container_exists(name):
        print(f"Container '{name}' already exists. Reusing it.")
        run(["docker", "start", name], check=False)
    else:
        run(
            [
                "docker",
                "run",
                "-d",
                "--name",
                name,
                "-e",
                f"POSTGRES_PASSWORD={password}",
                "-e",
                f"POSTGRES_DB={database}",
                "-e",
                f"POSTGRES_USER={user}",
                "-v",
                f"{CERT_DIR}:/certs:ro",
                "-p",
                f"{port}:5432",
                "--entrypoint",
                "sh",
                DOCKER_IMAGE,
                "-c",
                _ENTRYPOINT,
            ]
        )
    wait_for_start(name, user)


def wait_for_start(name: str, user: str, retries: int = 15, delay: float = 1.0) -> None:
    for attempt in range(retries):
        result = subprocess.run(["docker", "exec", name, "pg_isready", "-U", user], text=True)
        if result.returncode == 0:
            return
        time.sleep(delay)
    print("Warning: database did not report ready state; continuing anyway.")


def create_schema(name: str, database: str, user: str, schema: str) -> None:
    run(
        ["docker", "exec", "-i", name, "psql", "-U", user, "-d", database, "-v", "ON_ERROR_STOP=1"],
        input=f'CREATE SCHEMA IF NOT EXISTS "{schema}";',
    )


def write_env(port: int, user: str, database: str, password: str, schema: str, cert_path: Path) -> None:
    if ENV_FILE.exists():
        print(f"{ENV_FILE} already exists; leaving it as-is.")
        return
    lines = [
        f"DB_HOST=localhost:{port}",
        f"DB_ID={user}",
        f"DB_PASSWORD={password}",
        f"DB_NAME={database}",
        f"DB_SCHEMA={schema}",
        f"DB_CERT_PATH={cert_path.relative_to(ROOT)}",
    ]
    ENV_FILE.write_text("\n".join(lines) + "\n")
    print(f"Wrote connection settings to {ENV_FILE}.")


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--container", default=DEFAULT_CONTAINER, help="Docker container name")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="Host port to expose Postgres on")
    parser.add_argument("--password", default=DEFAULT_PASSWORD, help="Postgres password")
    parser.add_argument("--database", default=DEFAULT_DB, help="Database name to create")
    parser.add_argument("--user", default=DEFAULT_USER, help="Database user")
    parser.add_argument("--schema", default=DEFAULT_SCHEMA, help="Schema applied as search_path")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or sys.argv[1:])
    cert_path = CERT_DIR / "server.crt"
    if not cert_path.exists():
        cert_path = write_server_certificate(CERT_DIR)
    try:
        start_container(args.container, args.port, args.password, args.database, args.user)
        create_schema(args.container, args.database, args.user, args.schema)
    except FileNotFoundError:
        print("Docker is not installed or not on PATH.")
        return 1
    write_env(args.port, args.user, args.database, args.password, args.schema, cert_path)
    print("Sample database is ready. Check it with: python -m csrdb ping")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
