import sys
import unittest
from unittest.mock import MagicMock, patch

import cv2  # noqa: F401  loaded before sys.modules is patched below
import numpy as np

from cardscan.core.errors import CaptureUnavailable, RecognitionError
from cardscan.services.scanner.models import CaptureFrame

# Keep the heavy OCR/zbar stacks out of the test run
with patch.dict(sys.modules, {"easyocr": MagicMock(), "pyzbar": MagicMock()}):
    from cardscan.services.scanner import vision
    from cardscan.services.scanner import camera as camera_module


class TestUprightImage(unittest.TestCase):
    def test_rotation_is_clockwise(self):
        image = np.array([[1, 2],
                          [3, 4]])
        frame = CaptureFrame(image, rotation=90)

        upright = vision.upright_image(frame)

        np.testing.assert_array_equal(upright, np.array([[3, 1],
                                                         [4, 2]]))

    def test_no_rotation_returns_same_image(self):
        image = np.zeros((4, 3, 3), dtype=np.uint8)
        self.assertIs(vision.upright_image(CaptureFrame(image)), image)

    def test_released_frame_rejected(self):
        frame = CaptureFrame(np.zeros((2, 2)))
        frame.release()
        with self.assertRaises(RecognitionError):
            vision.upright_image(frame)


class TestPyzbarDecoder(unittest.IsolatedAsyncioTestCase):
    async def test_decodes_payloads_in_order(self):
        symbols = [MagicMock(data=b"0123456789"), MagicMock(data=b"XLN-123")]
        with patch.object(vision, "pyzbar") as mock_zbar:
            mock_zbar.decode.return_value = symbols
            payloads = await vision.PyzbarDecoder().decode(CaptureFrame(np.zeros((8, 8, 3), dtype=np.uint8)))

        self.assertEqual(payloads, ["0123456789", "XLN-123"])
        # decoded on a grayscale image
        self.assertEqual(mock_zbar.decode.call_args.args[0].ndim, 2)

    async def test_disabled_decoder_finds_nothing(self):
        with patch.object(vision, "pyzbar") as mock_zbar:
            payloads = await vision.PyzbarDecoder(enabled=False).decode(CaptureFrame(np.zeros((8, 8))))

        self.assertEqual(payloads, [])
        mock_zbar.decode.assert_not_called()

    async def test_zbar_failure_raises_recognition_error(self):
        with patch.object(vision, "pyzbar") as mock_zbar:
            mock_zbar.decode.side_effect = OSError("zbar missing")
            with self.assertRaises(RecognitionError):
                await vision.PyzbarDecoder().decode(CaptureFrame(np.zeros((8, 8))))


class TestEasyOcrRecognizer(unittest.IsolatedAsyncioTestCase):
    async def test_lines_joined_and_reader_reused(self):
        with patch.object(vision, "easyocr") as mock_easyocr:
            reader = mock_easyocr.Reader.return_value
            reader.readtext.return_value = ["Lightning Bolt", "Instant"]
            recognizer = vision.EasyOcrRecognizer(languages=["en"], gpu=False)

            first = await recognizer.recognize_text(CaptureFrame(np.zeros((8, 8, 3), dtype=np.uint8)))
            await recognizer.recognize_text(CaptureFrame(np.zeros((8, 8, 3), dtype=np.uint8)))

        self.assertEqual(first, "Lightning Bolt\nInstant")
        mock_easyocr.Reader.assert_called_once_with(["en"], gpu=False)
        self.assertEqual(reader.readtext.call_args.kwargs, {"detail": 0})

    async def test_ocr_failure_raises_recognition_error(self):
        with patch.object(vision, "easyocr") as mock_easyocr:
            mock_easyocr.Reader.return_value.readtext.side_effect = RuntimeError("CUDA error")
            with self.assertRaises(RecognitionError):
                await vision.EasyOcrRecognizer().recognize_text(CaptureFrame(np.zeros((8, 8))))


class TestCv2Camera(unittest.IsolatedAsyncioTestCase):
    async def test_unbound_camera_is_unavailable(self):
        with self.assertRaises(CaptureUnavailable):
            await camera_module.Cv2Camera().acquire_frame()

    async def test_frame_carries_rotation(self):
        with patch.object(camera_module.cv2, "VideoCapture") as mock_capture:
            cap = mock_capture.return_value
            cap.isOpened.return_value = True
            cap.read.return_value = (True, np.zeros((4, 4, 3), dtype=np.uint8))

            camera = camera_module.Cv2Camera(index=2, rotation=270)
            camera.bind()
            frame = await camera.acquire_frame()
            camera.unbind()

        mock_capture.assert_called_once_with(2)
        self.assertEqual(frame.rotation, 270)
        cap.release.assert_called_once()
        self.assertFalse(camera.ready)

    async def test_failed_read_is_unavailable(self):
        with patch.object(camera_module.cv2, "VideoCapture") as mock_capture:
            cap = mock_capture.return_value
            cap.isOpened.return_value = True
            cap.read.return_value = (False, None)

            camera = camera_module.Cv2Camera()
            camera.bind()
            with self.assertRaises(CaptureUnavailable):
                await camera.acquire_frame()


if __name__ == '__main__':
    unittest.main()
