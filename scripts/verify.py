import asyncio
import os
import uuid

import httpx

BASE_URL = os.getenv("SHORTLINK_URL", "http://localhost:8000")
CLIENT_KEY = os.getenv("CLIENT_KEY", "")


async def run_verification():
    print(f"🚀  Starting Verification against {BASE_URL}...\n")

    headers = {"Authorization": f"Bearer {CLIENT_KEY}"}
    async with httpx.AsyncClient(base_url=BASE_URL, headers=headers, timeout=10.0) as client:
        # 1. Health Check
        print("1. [Health] Checking /health...")
        try:
            resp = await client.get("/health")
            if resp.status_code == 200 and resp.json() == {"status": "ok"}:
                print("   ✅  Health Check Passed")
            else:
                print(f"   ❌  Health Check Failed: {resp.text}")
                return
        except httpx.HTTPError as e:
            print(f"   ❌  Connection Error: {e}")
            return

        # 2. Client key
        print("\n2. [API] Checking client key enforcement...")
        resp = await client.get("/url/redirect", params={"alias": "nope"}, headers={"Authorization": ""})
        if resp.status_code == 401:
            print("   ✅  Missing key rejected")
        else:
            print(f"   ❌  Missing key accepted: {resp.status_code}")

        # 3. Create guest link with a custom alias
        print("\n3. [API] Creating Short Link...")
        long_url = "https://www.example.com"
        alias = uuid.uuid4().hex[:8]
        resp = await client.post("/url/guest", json={"originalUrl": long_url, "alias": alias})
        if resp.status_code == 201:
            data = resp.json()["data"]
            print(f"   ✅  Created: {data['alias']} -> {data['originalUrl']}")
        else:
            print(f"   ❌  Create Failed: {resp.status_code} {resp.text}")
            return

        # 4. Verify Redirect
        print("\n4. [API] Verifying Redirect...")
        resp = await client.get("/url/redirect", params={"alias": alias}, follow_redirects=False)
        if resp.status_code == 307 and resp.headers.get("location") == long_url:
            print(f"   ✅  Redirect Location matches: {resp.headers['location']}")
        else:
            print(f"   ❌  Redirect Failed: {resp.status_code} {resp.headers.get('location')}")

        # 5. Alias availability
        print("\n5. [API] Verifying alias check...")
        resp = await client.post("/url/check_alias", json={"alias": alias})
        if resp.status_code == 400:
            print("   ✅  Taken alias reported")
        else:
            print(f"   ❌  Alias check Failed: {resp.status_code} {resp.text}")

        # 6. Rate Limiting
        print("\n6. [API] Verifying Rate Limiting...")
        limit_hit = False
        for i in range(10):
            resp = await client.post("/url/guest", json={"originalUrl": "https://s.com"})
            if resp.status_code == 429:
                limit_hit = True
                retry = resp.headers.get("RateLimit-RetryAfter")
                print(f"   ✅  Rate Limit Hit at request #{i+1}, retry after {retry}s")
                break

        if not limit_hit:
            print("   ❌  Rate Limit NOT Hit (Limit might be too high or Redis down)")

        # 7. Metrics
        print("\n7. [Observability] Verifying Metrics...")
        resp = await client.get("/metrics")
        if resp.status_code == 200 and "links_created_total" in resp.text:
            print("   ✅  Metrics Endpoint Exposed")
        else:
            print(f"   ❌  Metrics Failed: {resp.status_code}")

    print("\n✨ Verification Complete!")

if __name__ == "__main__":
    asyncio.run(run_verification())
