# src/p2p_recon/cli/migrate.py
import os

from dotenv import load_dotenv

from p2p_recon.data.storage.postgres.pool import create_pool
from p2p_recon.data.storage.postgres.storage import DDL_PATH, PostgreSQLOrderStore


def main() -> None:
    load_dotenv()
    dsn = os.getenv("PG_DSN")
    if not dsn:
        raise SystemExit("PG_DSN env var is required")

    pool = create_pool(dsn, max_size=1)
    store = PostgreSQLOrderStore(pool)

    try:
        store.exec_ddl(DDL_PATH.read_text(encoding="utf-8"))
    finally:
        pool.close()
    print(f"[migrate] applied {DDL_PATH.name}")


if __name__ == "__main__":
    main()
