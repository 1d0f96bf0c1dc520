import unittest
import tempfile
import os
import time
import threading
from unittest.mock import patch, Mock
import sqlite3

from storage.cache import Cache, cached_get


class TestCacheTTLAndConcurrency(unittest.TestCase):
    def test_stale_entry_is_refreshed(self):
        tmp = tempfile.NamedTemporaryFile(delete=False)
        path = tmp.name
        tmp.close()
        cache = Cache(path)
        try:
            mock_old = Mock()
            mock_old.status_code = 200
            mock_old.json.return_value = [{'v': 1}]
            with patch('storage.retry.requests.get', return_value=mock_old):
                cached_get('http://example.com/rest/v1/issue_activity', cache=cache, cache_key='ttl_k', backoff_base=0)

            # age the entry past max_age
            conn = sqlite3.connect(path)
            conn.execute('UPDATE rest_cache SET timestamp = ? WHERE key = ?', (time.time() - 3600, 'ttl_k'))
            conn.commit()
            conn.close()

            mock_new = Mock()
            mock_new.status_code = 200
            mock_new.json.return_value = [{'v': 2}]
            with patch('storage.retry.requests.get', return_value=mock_new) as mocked_get:
                res = cached_get('http://example.com/rest/v1/issue_activity', cache=cache, cache_key='ttl_k', max_age=5, backoff_base=0)
                self.assertEqual(res['response'], [{'v': 2}])
                self.assertTrue(mocked_get.called)

            with patch('storage.retry.requests.get', side_effect=AssertionError('should not be called')):
                res2 = cached_get('http://example.com/rest/v1/issue_activity', cache=cache, cache_key='ttl_k', max_age=3600, backoff_base=0)
                self.assertEqual(res2['response'], [{'v': 2}])
        finally:
            cache.close()
            os.remove(path)

    def test_concurrent_set_get_no_corruption(self):
        tmp = tempfile.NamedTemporaryFile(delete=False)
        path = tmp.name
        tmp.close()
        cache = Cache(path)
        try:
            num_threads = 8
            keys_per_thread = 100
            errors = []

            def worker(thread_idx):
                try:
                    for i in range(keys_per_thread):
                        key = f"supabase:issue_activity:t{thread_idx}_k{i}"
                        cache.set(key, [{'thread': thread_idx, 'i': i}], status=200)
                        entry = cache.get(key)
                        if entry is None or entry['response'][0].get('i') != i:
                            errors.append((thread_idx, i))
                except sqlite3.Error as ex:
                    errors.append(('exc', thread_idx, str(ex)))

            threads = [threading.Thread(target=worker, args=(ti,)) for ti in range(num_threads)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

            self.assertEqual(len(errors), 0, f"Errors occurred in threads: {errors}")
            self.assertEqual(cache.stats()['count'], num_threads * keys_per_thread)
        finally:
            cache.close()
            os.remove(path)


if __name__ == '__main__':
    unittest.main()
