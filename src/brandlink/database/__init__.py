"""
# Database Package

MongoDB access for BrandLink through a single, process-wide `DatabaseManager`.

## Collections

| Collection | Contents |
|------------|----------|
| `businesses` | Brand (business) accounts and profiles |
| `brand_settings` | Per-brand theme, domains, integrations, web3 and transfer settings |
| `manufacturers` | Manufacturer accounts and profiles |
| `users` | End-user accounts |
| `connections` | Brand ↔ manufacturer partnership requests |
| `notifications` | In-app notifications (soft-deletable) |
| `certificates` | NFT certificates and their transfer state |
| `supply_chain_events` | Product events recorded on-chain |
| `media` | Uploaded file metadata |
| `security_events` | Security audit log (90 day TTL) |
| `active_sessions` | Server-tracked login sessions (TTL) |
| `blacklisted_tokens` | Revoked JWTs (TTL at token expiry) |

## Lifecycle

1.  **Instantiation** (module load): `db_manager` created, no I/O.
2.  **Connection** (startup): `connect()` establishes the pool.
3.  **Operations** (runtime): services call `db_manager.get_collection(name)`.
4.  **Disconnection** (shutdown): `disconnect()` closes all sockets.
"""

from brandlink.database.manager import DatabaseManager, db_manager

__all__ = ["DatabaseManager", "db_manager"]
