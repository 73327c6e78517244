"""In-process stand-in for the card catalog/inventory service."""
from aiohttp import web

TOKEN = "test-token"

CARDS = {
    "lightning bolt": {
        "id": "c-1", "scryfall_id": "sf-1", "name": "Lightning Bolt", "set_code": "lea",
        "collector_number": "161", "type_line": "Instant", "mana_cost": "{R}", "rarity": "common",
        "created_at": "2024-01-01T00:00:00Z",
    },
    "counterspell": {
        "id": "c-2", "name": "Counterspell", "set_code": "lea", "collector_number": "54",
        "created_at": "2024-01-01T00:00:00Z",
    },
}
BARCODES = {"0123456789": "lightning bolt"}


def lookup(scan: dict):
    if scan.get("barcode"):
        key = BARCODES.get(scan["barcode"])
        return CARDS.get(key) if key else None
    if scan.get("card_name"):
        return CARDS.get(scan["card_name"].lower())
    for card in CARDS.values():
        if card["set_code"] == scan.get("set_code") and card["collector_number"] == scan.get("collector_number"):
            return card
    return None


def scan_result(scan: dict) -> dict:
    card = lookup(scan)
    if card is None:
        return {"success": False, "error": "card not found"}
    return {"success": True, "card": card}


def build_app() -> web.Application:
    app = web.Application()
    app["requests"] = []
    app["fail_status"] = None
    app["auth_calls"] = 0

    def authorized(request) -> bool:
        return request.headers.get("Authorization") == f"Bearer {TOKEN}"

    async def auth_anonymous(request):
        app["auth_calls"] += 1
        body = await request.json()
        if not body.get("device_id"):
            return web.json_response({"error": "device_id is required"}, status=400)
        return web.json_response({"user_id": "u-1", "token": TOKEN})

    async def scan(request):
        if not authorized(request):
            return web.json_response({"error": "user not authenticated"}, status=401)
        body = await request.json()
        app["requests"].append(("scan", body))
        if app["fail_status"]:
            return web.json_response({"error": "boom"}, status=app["fail_status"])
        return web.json_response(scan_result(body))

    async def scan_bulk(request):
        if not authorized(request):
            return web.json_response({"error": "user not authenticated"}, status=401)
        body = await request.json()
        app["requests"].append(("bulk", body))
        if app["fail_status"]:
            return web.json_response({"error": "boom"}, status=app["fail_status"])
        scans = body.get("scans", [])
        if not scans:
            return web.json_response({"error": "scans array cannot be empty"}, status=400)
        results = [scan_result(s) for s in scans]
        ok = sum(1 for r in results if r["success"])
        return web.json_response({
            "session_id": 7,
            "total_scanned": len(scans),
            "successful_scans": ok,
            "failed_scans": len(scans) - ok,
            "results": results,
        })

    async def inventory(request):
        if not authorized(request):
            return web.json_response({"error": "user not authenticated"}, status=401)
        items = [{
            "id": 1, "user_id": "u-1", "card_id": "c-1", "quantity": 3,
            "added_at": "2024-01-02T00:00:00Z", "card": CARDS["lightning bolt"],
        }]
        return web.json_response({"inventory": items, "count": len(items)})

    async def get_card(request):
        if not authorized(request):
            return web.json_response({"error": "user not authenticated"}, status=401)
        card_id = request.query.get("id")
        for card in CARDS.values():
            if card["id"] == card_id:
                return web.json_response(card)
        return web.json_response({"error": "card not found"}, status=404)

    async def health(request):
        return web.json_response({"status": "ok"})

    app.router.add_post("/api/v1/auth/anonymous", auth_anonymous)
    app.router.add_post("/api/v1/cards/scan", scan)
    app.router.add_post("/api/v1/cards/scan/bulk", scan_bulk)
    app.router.add_get("/api/v1/inventory", inventory)
    app.router.add_get("/api/v1/cards", get_card)
    app.router.add_get("/health", health)
    return app
