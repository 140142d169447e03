"""
Test utilities package for Schedule Bot tests.

## Available Modules

### test_helpers.py
- `create_test_config()`, `create_config_manager_with_config()`: configuration factories
- `create_temp_config_file()`, `create_temp_directory()`: temporary file context managers
- `create_mock_channel()`, `create_mock_guild()`, `create_mock_message()`,
  `create_mock_messenger()`: Discord mocks
- `create_test_entry()`, `create_trigger_context()`: schedule entry factories
- `InMemoryEntryStore`: dict-backed entry store
"""
