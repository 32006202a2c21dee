import json

import scripts.generate_openapi as generator


def test_generate_openapi(tmp_path):
    output = tmp_path / "schema.json"

    assert generator.main(["--output", str(output)]) == 0

    schema = json.loads(output.read_text(encoding="utf-8"))
    assert schema["info"]["title"] == "driftgate"
    assert "/v1/evaluations" in schema["paths"]
    assert "/v1/receipts/verify" in schema["paths"]


def test_check_mode_detects_stale_schema(tmp_path):
    output = tmp_path / "schema.json"

    assert generator.main(["--output", str(output), "--check"]) == 1
    generator.main(["--output", str(output)])
    assert generator.main(["--output", str(output), "--check"]) == 0

    output.write_text("{}\n", encoding="utf-8")
    assert generator.main(["--output", str(output), "--check"]) == 1
