import ipaddress
import socket

import uvicorn

from app.core.config import settings


def get_lan_ip():
    try:
        # Connect to a public DNS server to determine the route
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        s.connect(("8.8.8.8", 80))
        ip = s.getsockname()[0]
        s.close()
        return ip
    except OSError:
        return "127.0.0.1"


def get_private_ips():
    """Private, non-loopback IPv4 addresses of this host, for the startup banner."""
    ips = set()
    try:
        infos = socket.getaddrinfo(socket.gethostname(), None, socket.AF_INET)
    except OSError:
        infos = []
    for info in infos:
        ips.add(info[4][0])
    ips.add(get_lan_ip())

    return sorted(
        ip for ip in ips
        if ipaddress.ip_address(ip).is_private and not ipaddress.ip_address(ip).is_loopback
    )


def main():
    port = settings.BIND_PORT

    print("\n" + "="*60)
    print(f"🚀 SERVER STARTING")
    for ip in get_private_ips():
        print(f"📡 local ip: {ip}  ->  http://{ip}:{port}")
    print(f"🏠 Local:    http://127.0.0.1:{port}")
    print("-" * 60)
    print(f"    Ticket TTL:     {settings.TICKET_TTL_SECONDS}s")
    print(f"    Ticket store:   {settings.TICKET_STORE_PATH or '(in memory)'}")
    print(f"    Frontend:       {settings.FRONTEND_ORIGIN}")
    print("="*60 + "\n")

    uvicorn.run(
        "app.main:app",
        host=settings.BIND_HOST,
        port=port,
        log_level=settings.LOG_LEVEL.lower(),
    )

if __name__ == "__main__":
    main()
