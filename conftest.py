pytest_plugins = ["pytester", "mobile_harness.pytest_plugin"]
