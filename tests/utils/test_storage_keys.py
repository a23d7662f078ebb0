from Entropy_decomp.utils.storage_keys import decomposition_key, extracted_text_key, requirement_prefix


def test_keys_are_scoped_by_client_project_and_requirement():
    assert requirement_prefix("c", "p", "r") == "clients/c/projects/p/requirements/r"
    assert decomposition_key("c", "p", "r", "themes") == "clients/c/projects/p/requirements/r/decomposition/themes.json"
    assert extracted_text_key("c", "p", "r") == "clients/c/projects/p/requirements/r/extracted/text.txt"
