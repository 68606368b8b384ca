#!/usr/bin/env python3
"""
Backend API Smoke Tests for the Icons Gateway
Runs against a live server (default http://localhost:3000) that can reach the
upstream icon repository.
"""

import requests
import time
from datetime import datetime
import os
import xml.etree.ElementTree as ET

# Load environment variables to get the backend URL
def load_env_file(file_path):
    """Load environment variables from .env file"""
    env_vars = {}
    if os.path.exists(file_path):
        with open(file_path, 'r') as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith('#') and '=' in line:
                    key, value = line.split('=', 1)
                    env_vars[key] = value.strip('"')
    return env_vars

backend_env = load_env_file(os.path.join(os.path.dirname(__file__), 'backend', '.env'))
BACKEND_URL = os.environ.get('BACKEND_URL') or backend_env.get('BACKEND_URL', 'http://localhost:3000')
DISPLAY_SIZE = 48
GAP = int(backend_env.get('ICONS_GAP', '8'))

print(f"Testing backend at: {BACKEND_URL}")

class IconsAPITester:
    def __init__(self):
        self.session = requests.Session()
        self.test_results = []
        self.known_icons = []

    def log_test(self, test_name, success, details="", response_data=None):
        """Log test results"""
        status = "PASS" if success else "FAIL"
        print(f"{status} {test_name}")
        if details:
            print(f"   Details: {details}")
        if response_data and not success:
            print(f"   Response: {response_data}")
        print()

        self.test_results.append({
            'test': test_name,
            'success': success,
            'details': details,
            'timestamp': datetime.now().isoformat()
        })

    def test_health_check(self):
        """Test 1: Health endpoint reports a loaded index"""
        try:
            response = self.session.get(f"{BACKEND_URL}/api/health")
            if response.status_code != 200:
                self.log_test("Health Check", False, f"HTTP {response.status_code}", response.text)
                return False
            data = response.json()
            ok = data.get("status") == "ok" and data.get("icons", 0) > 0
            self.log_test("Health Check", ok, f"status={data.get('status')} icons={data.get('icons')}", data)
            return ok
        except Exception as e:
            self.log_test("Health Check", False, f"Connection error: {str(e)}")
            return False

    def test_icon_list(self):
        """Test 2: /api/icons returns the icon name index"""
        try:
            response = self.session.get(f"{BACKEND_URL}/api/icons")
            if response.status_code != 200:
                self.log_test("Icon List", False, f"HTTP {response.status_code}", response.text)
                return False
            data = response.json()
            if not isinstance(data, list) or not data:
                self.log_test("Icon List", False, "Expected a non-empty JSON array", data)
                return False
            self.known_icons = data
            self.log_test("Icon List", True, f"{len(data)} icons, e.g. {', '.join(data[:3])}")
            return True
        except Exception as e:
            self.log_test("Icon List", False, f"Error: {str(e)}")
            return False

    def _fetch_svg(self, query):
        response = self.session.get(f"{BACKEND_URL}/icons", params=query)
        if response.status_code != 200:
            return response, None
        return response, ET.fromstring(response.content)

    def test_combined_svg(self):
        """Test 3: Known icons render into one SVG with exact grid size"""
        try:
            names = self.known_icons[:3]
            response, root = self._fetch_svg({"i": ",".join(names)})
            if root is None:
                self.log_test("Combined SVG", False, f"HTTP {response.status_code}", response.text)
                return False
            expected_width = len(names) * DISPLAY_SIZE + (len(names) - 1) * GAP
            width = int(root.get("width"))
            ok = response.headers.get("content-type", "").startswith("image/svg+xml") and width == expected_width
            self.log_test("Combined SVG", ok, f"width={width} expected={expected_width}")
            return ok
        except Exception as e:
            self.log_test("Combined SVG", False, f"Error: {str(e)}")
            return False

    def test_unknown_icons_are_dropped(self):
        """Test 4: Unknown names are filtered out silently"""
        try:
            response, root = self._fetch_svg({"i": "definitely-not-an-icon-123,another-missing-icon"})
            ok = root is not None and root.get("width") == "0" and root.get("height") == "0"
            self.log_test("Unknown Icons Dropped", ok, f"HTTP {response.status_code}")
            return ok
        except Exception as e:
            self.log_test("Unknown Icons Dropped", False, f"Error: {str(e)}")
            return False

    def test_same_icon_twice(self):
        """Test 5: A repeated icon gets distinct ids in each cell"""
        try:
            name = self.known_icons[0]
            response, root = self._fetch_svg({"i": f"{name},{name}"})
            if root is None:
                self.log_test("Repeated Icon", False, f"HTTP {response.status_code}", response.text)
                return False
            ids = [el.get("id") for el in root.iter() if el.get("id")]
            ok = len(ids) == len(set(ids))
            self.log_test("Repeated Icon", ok, f"{len(ids)} ids, {len(set(ids))} unique")
            return ok
        except Exception as e:
            self.log_test("Repeated Icon", False, f"Error: {str(e)}")
            return False

    def test_webp_output(self):
        """Test 6: format=webp returns a WEBP image"""
        try:
            response = self.session.get(f"{BACKEND_URL}/icons", params={"i": ",".join(self.known_icons[:2]), "format": "webp"})
            ok = response.status_code == 200 and response.content[8:12] == b"WEBP"
            self.log_test("WEBP Output", ok, f"HTTP {response.status_code} {response.headers.get('content-type')}")
            return ok
        except Exception as e:
            self.log_test("WEBP Output", False, f"Error: {str(e)}")
            return False

    def test_error_handling(self):
        """Test 7: Missing icons and bad per-row bounds are client errors"""
        try:
            checks = [
                ({}, 400),
                ({"i": ""}, 400),
                ({"i": "docker", "perline": "0"}, 400),
                ({"i": "docker", "perline": "51"}, 400),
                ({"i": "docker", "format": "gif"}, 400),
            ]
            failures = []
            for params, expected in checks:
                response = self.session.get(f"{BACKEND_URL}/icons", params=params)
                if response.status_code != expected:
                    failures.append(f"{params} -> {response.status_code}")
            ok = not failures
            self.log_test("Error Handling", ok, "; ".join(failures) or "all rejected with 400")
            return ok
        except Exception as e:
            self.log_test("Error Handling", False, f"Error: {str(e)}")
            return False

    def test_cors_headers(self):
        """Test 8: Cross-origin GET is allowed"""
        try:
            response = self.session.get(f"{BACKEND_URL}/api/icons", headers={"Origin": "https://example.com"})
            origin = response.headers.get("access-control-allow-origin")
            ok = origin in ("*", "https://example.com")
            self.log_test("CORS Headers", ok, f"access-control-allow-origin={origin}")
            return ok
        except Exception as e:
            self.log_test("CORS Headers", False, f"Error: {str(e)}")
            return False

    def run_all_tests(self):
        """Run all backend tests"""
        print("Starting Backend API Tests for the Icons Gateway")
        print("=" * 70)
        print()

        tests = [
            self.test_health_check,
            self.test_icon_list,
            self.test_combined_svg,
            self.test_unknown_icons_are_dropped,
            self.test_same_icon_twice,
            self.test_webp_output,
            self.test_error_handling,
            self.test_cors_headers,
        ]

        passed = 0
        total = len(tests)

        for test in tests:
            try:
                if test():
                    passed += 1
                time.sleep(0.2)  # Small delay between tests
            except Exception as e:
                print(f"Test {test.__name__} failed with exception: {str(e)}")

        print("=" * 70)
        print(f"TEST SUMMARY: {passed}/{total} tests passed")
        print("=" * 70)

        if passed != total:
            print(f"{total - passed} test(s) failed. Check the details above.")

        return passed == total

def main():
    """Main test execution"""
    tester = IconsAPITester()
    success = tester.run_all_tests()

    # Return appropriate exit code
    raise SystemExit(0 if success else 1)

if __name__ == "__main__":
    main()
