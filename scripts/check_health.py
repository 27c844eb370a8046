import os
import httpx
from dotenv import load_dotenv

load_dotenv()

BASE_URL = os.environ.get("BASE_URL", "http://localhost:8000").rstrip("/")
url = f"{BASE_URL}/api/ai/health"

print("Checking:", url)

r = httpx.get(url, timeout=120)
r.raise_for_status()
for component, status in r.json().items():
    print(f"{component:>10}: {status}")
