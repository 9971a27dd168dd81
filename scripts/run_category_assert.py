"""
Check category detection and cascade routing against the live configuration.

Run:
  python scripts/run_category_assert.py

Uses the real shop API and language model when SHOP_TOKEN / OPENAI_API_KEY are
set; without them every external call soft-fails and the apology path is shown.
"""

from fastapi.testclient import TestClient

from app.category_detector import detect
from app.main import app


SAMPLES = [
    ("4人で遊べる協力ゲーム", {"count": 64, "keyword": 101}),
    ("14人で遊べるやつ", {"count": None}),
    ("2才の子と遊びたい", {"age": 33}),
    ("20歳の友達と簡単なゲーム", {"age": 46, "keyword": 109}),
    ("子供と遊べるゲーム", {"age": 36}),
]


def run():
    for text, expected in SAMPLES:
        result = detect(text)
        got = {
            "age": result.age_category_id,
            "count": result.count_category_id,
            "keyword": result.keyword_category_id,
        }
        for key, value in expected.items():
            assert got[key] == value, f"{text!r}: {key}={got[key]} expected {value}"
    print("Detection assertions passed.")

    client = TestClient(app)
    for text, _ in SAMPLES:
        resp = client.post("/api/chat", json={"messages": [{"role": "user", "content": text}]})
        assert resp.status_code == 200, resp.text
        body = resp.json()
        for item in body["recommended_items"]:
            assert item["is_visible"] and item["in_stock"], f"ineligible item leaked: {item}"
        names = [i["name"] for i in body["recommended_items"]]
        print(f"- {text} -> {names} | {body['reply']}")


if __name__ == "__main__":
    run()
